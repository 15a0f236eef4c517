"""Protocol version this client speaks.

The peer reports its own version in the ``ping`` response; the client refuses
to continue when the two differ.
"""

SDK_PROTOCOL_VERSION = 2


def get_sdk_protocol_version() -> int:
    return SDK_PROTOCOL_VERSION
