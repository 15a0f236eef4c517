from __future__ import annotations

import dataclasses
import typing as t
from dataclasses import dataclass

from .tools import Tool

HookHandler = t.Callable[[t.Any, t.Dict[str, t.Any]], t.Any]
PermissionHandler = t.Callable[..., t.Any]
UserInputHandler = t.Callable[..., t.Any]


@dataclass
class SessionHooks:
    on_pre_tool_use: t.Optional[HookHandler] = None
    on_post_tool_use: t.Optional[HookHandler] = None
    on_user_prompt_submitted: t.Optional[HookHandler] = None
    on_session_start: t.Optional[HookHandler] = None
    on_session_end: t.Optional[HookHandler] = None
    on_error_occurred: t.Optional[HookHandler] = None

    # wire hook name -> attribute
    HOOK_FIELDS: t.ClassVar[t.Dict[str, str]] = {
        "preToolUse": "on_pre_tool_use",
        "postToolUse": "on_post_tool_use",
        "userPromptSubmitted": "on_user_prompt_submitted",
        "sessionStart": "on_session_start",
        "sessionEnd": "on_session_end",
        "errorOccurred": "on_error_occurred",
    }

    def handler_for(self, hook_type: str) -> t.Optional[HookHandler]:
        attr = self.HOOK_FIELDS.get(hook_type)
        return getattr(self, attr) if attr else None

    def any_handler(self) -> bool:
        return any(getattr(self, attr) is not None for attr in self.HOOK_FIELDS.values())


@dataclass
class SystemMessageConfig:
    content: t.Optional[str] = None
    mode: str = "append"  # append | replace

    def to_wire(self) -> t.Dict[str, t.Any]:
        out: t.Dict[str, t.Any] = {"mode": self.mode}
        if self.content is not None:
            out["content"] = self.content
        return out


@dataclass
class ProviderConfig:
    type: t.Optional[str] = None  # openai | azure | anthropic
    wire_api: t.Optional[str] = None
    base_url: t.Optional[str] = None
    api_key: t.Optional[str] = None
    bearer_token: t.Optional[str] = None
    azure_api_version: t.Optional[str] = None

    def to_wire(self) -> t.Dict[str, t.Any]:
        out = _compact(
            type=self.type,
            wireApi=self.wire_api,
            baseUrl=self.base_url,
            apiKey=self.api_key,
            bearerToken=self.bearer_token,
        )
        if self.azure_api_version:
            out["azure"] = {"apiVersion": self.azure_api_version}
        return out


@dataclass
class CustomAgentConfig:
    name: str
    prompt: str
    display_name: t.Optional[str] = None
    description: t.Optional[str] = None
    tools: t.Optional[t.List[str]] = None
    mcp_servers: t.Optional[t.Dict[str, t.Any]] = None
    infer: t.Optional[bool] = None

    def to_wire(self) -> t.Dict[str, t.Any]:
        return {
            "name": self.name,
            "prompt": self.prompt,
            **_compact(
                displayName=self.display_name,
                description=self.description,
                tools=self.tools,
                mcpServers=self.mcp_servers,
                infer=self.infer,
            ),
        }


@dataclass
class InfiniteSessionConfig:
    enabled: t.Optional[bool] = None
    background_compaction_threshold: t.Optional[float] = None
    buffer_exhaustion_threshold: t.Optional[float] = None

    def to_wire(self) -> t.Dict[str, t.Any]:
        return _compact(
            enabled=self.enabled,
            backgroundCompactionThreshold=self.background_compaction_threshold,
            bufferExhaustionThreshold=self.buffer_exhaustion_threshold,
        )


@dataclass
class SessionConfig:
    """Options for ``Client.create_session``.

    Handler fields (tools, permission, user input, hooks) stay local; only
    flags announcing them go over the wire.
    """

    session_id: t.Optional[str] = None
    model: t.Optional[str] = None
    reasoning_effort: t.Optional[str] = None
    config_dir: t.Optional[str] = None
    tools: t.List[Tool] = dataclasses.field(default_factory=list)
    system_message: t.Optional[t.Union[SystemMessageConfig, t.Dict[str, t.Any]]] = None
    available_tools: t.Optional[t.List[str]] = None
    excluded_tools: t.Optional[t.List[str]] = None
    provider: t.Optional[ProviderConfig] = None
    on_permission_request: t.Optional[PermissionHandler] = None
    on_user_input_request: t.Optional[UserInputHandler] = None
    hooks: t.Optional[SessionHooks] = None
    working_directory: t.Optional[str] = None
    streaming: t.Optional[bool] = None
    mcp_servers: t.Optional[t.Dict[str, t.Dict[str, t.Any]]] = None
    custom_agents: t.Optional[t.List[CustomAgentConfig]] = None
    skill_directories: t.Optional[t.List[str]] = None
    disabled_skills: t.Optional[t.List[str]] = None
    infinite_sessions: t.Optional[InfiniteSessionConfig] = None

    def to_wire(self) -> t.Dict[str, t.Any]:
        system_message = self.system_message
        if isinstance(system_message, SystemMessageConfig):
            system_message = system_message.to_wire()
        payload = _compact(
            model=self.model,
            sessionId=self.session_id,
            reasoningEffort=self.reasoning_effort,
            configDir=self.config_dir,
            tools=[tool.to_wire() for tool in self.tools] if self.tools else None,
            systemMessage=system_message,
            availableTools=self.available_tools,
            excludedTools=self.excluded_tools,
            requestPermission=True if self.on_permission_request else None,
            requestUserInput=True if self.on_user_input_request else None,
            hooks=True if self.hooks is not None and self.hooks.any_handler() else None,
            workingDirectory=self.working_directory,
            streaming=self.streaming,
            provider=self.provider.to_wire() if self.provider else None,
            mcpServers=self.mcp_servers,
            customAgents=[agent.to_wire() for agent in self.custom_agents] if self.custom_agents else None,
            skillDirectories=self.skill_directories,
            disabledSkills=self.disabled_skills,
            infiniteSessions=self.infinite_sessions.to_wire() if self.infinite_sessions else None,
        )
        return payload


@dataclass
class ResumeSessionConfig(SessionConfig):
    disable_resume: bool = False

    def to_wire_for(self, session_id: str) -> t.Dict[str, t.Any]:
        payload = self.to_wire()
        payload["sessionId"] = session_id
        if self.disable_resume:
            payload["disableResume"] = True
        return payload


def _compact(**values: t.Any) -> t.Dict[str, t.Any]:
    return {key: value for key, value in values.items() if value is not None}
