#!/usr/bin/env python3

import asyncio
import logging

import click

from agentlink import (
    Client,
    PermissionKind,
    PermissionRequestResult,
    SessionConfig,
    SessionEventType,
    ToolResult,
    UserInputResponse,
    define_tool,
)


@define_tool(
    parameters={
        "type": "object",
        "properties": {
            "city": {"type": "string", "description": "The city name"},
            "unit": {"type": "string", "enum": ["celsius", "fahrenheit"]},
        },
        "required": ["city"],
    }
)
def get_weather(args, invocation):
    """Get the current weather for a city."""
    unit = args.get("unit", "celsius")
    # a real tool would call a weather API here
    return f"The weather in {args['city']} is 22 degrees {unit} and sunny."


@define_tool(
    parameters={
        "type": "object",
        "properties": {"numbers": {"type": "array", "items": {"type": "number"}}},
        "required": ["numbers"],
    }
)
async def add_numbers(args, invocation):
    """Add a list of numbers."""
    total = sum(args["numbers"])
    return ToolResult.success(f"Sum: {total}", telemetry={"count": len(args["numbers"])})


def approve(request, ctx):
    click.echo(f"  [permission requested: {request.kind}]")
    return PermissionRequestResult(kind=PermissionKind.APPROVED)


def ask_user(request, ctx):
    answer = click.prompt(f"Agent asks: {request.question}", default="", show_default=False)
    return UserInputResponse(answer=answer, was_freeform=True)


def print_event(event):
    if event.type == SessionEventType.ASSISTANT_MESSAGE:
        click.echo(f"\nAssistant: {event.data.get('content')}")
    elif event.type == SessionEventType.TOOL_EXECUTION_START:
        click.echo(f"  [tool: {event.data.get('toolName')}]")
    elif event.type == SessionEventType.SESSION_ERROR:
        click.echo(f"  [error: {event.data.get('message')}]")


async def run(cli_path: str, model: str | None, prompt: str, timeout: float) -> None:
    proc = await asyncio.create_subprocess_exec(
        cli_path,
        "--headless",
        "--stdio",
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
    )
    client = Client.from_process(proc)
    try:
        await client.start()
        ping = await client.ping("hello from agentlink")
        click.echo(f"Connected (protocol v{ping.protocol_version}), state={client.state.value}")

        models = await client.list_models()
        click.echo("Models: " + ", ".join(m.id for m in models))

        session = await client.create_session(
            SessionConfig(
                model=model,
                tools=[get_weather, add_numbers],
                on_permission_request=approve,
                on_user_input_request=ask_user,
            )
        )
        click.echo(f"Session {session.session_id}")
        unsubscribe = session.on(print_event)

        reply = await session.send_and_wait(prompt, timeout=timeout)
        if reply is not None:
            click.echo("Final response received.")

        click.echo("\n--- history ---")
        for event in await session.get_messages():
            click.echo(f"  [{event.type}] {event.id}")

        unsubscribe()
        await session.destroy()
    finally:
        for error in await client.stop():
            click.echo(f"cleanup error: {error.message}", err=True)
        if proc.returncode is None:
            proc.terminate()
            await proc.wait()


@click.command()
@click.option("--cli-path", default="copilot", envvar="AGENT_CLI_PATH", help="Agent CLI executable")
@click.option("--model", default=None, help="Model id to use for the session")
@click.option("--prompt", default="What's the weather in Tokyo?", help="Prompt to send")
@click.option("--timeout", default=120.0, type=float, help="Seconds to wait for the turn to finish")
@click.option("--verbose", is_flag=True, help="Enable debug logging")
def main(cli_path: str, model: str | None, prompt: str, timeout: float, verbose: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)
    asyncio.run(run(cli_path, model, prompt, timeout))


if __name__ == "__main__":
    main()
