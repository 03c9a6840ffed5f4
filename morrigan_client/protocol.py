"""Protocol helpers for Morrigan message frames.

Every frame is a UTF-8 JSON object carrying at least a ``type`` field of the
form ``<provider-name>.<message-name>``. The provider name is everything up
to the first dot; the message name is the remainder and may contain further
dots.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .errors import MorriganMessageError, MorriganProtocolError

MESSAGE_TYPE_PATTERN = re.compile(
    r"^(?P<provider>[A-Za-z0-9_-]+)\.(?P<message>[A-Za-z0-9_.-]+)$"
)

CLIENT_STATE_TYPE = "client.state"
TOKEN_REFRESH_TYPE = "client.token.refresh"


@dataclass(frozen=True, slots=True)
class MessageType:
    """A message type split into its routing parts."""

    provider: str
    message: str

    def __str__(self) -> str:
        return f"{self.provider}.{self.message}"


def parse_message_type(value: Any) -> MessageType:
    """Split a ``type`` value into provider and message names.

    Raises:
        MorriganProtocolError: If the value is not a string matching the grammar
    """
    if not isinstance(value, str):
        raise MorriganProtocolError(
            f"Invalid type format (found '{type(value).__name__}', expected 'str')"
        )
    match = MESSAGE_TYPE_PATTERN.match(value)
    if match is None:
        raise MorriganProtocolError(f"Invalid type format: {value!r}")
    return MessageType(match.group("provider"), match.group("message"))


def decode_frame(data: str | bytes) -> dict[str, Any]:
    """Decode a text frame into a message object.

    Raises:
        MorriganProtocolError: If the frame is not a JSON object with a ``type``
    """
    try:
        message = json.loads(data)
    except (TypeError, ValueError, RecursionError) as err:
        raise MorriganProtocolError("Frame is not valid JSON") from err

    if not isinstance(message, dict):
        raise MorriganProtocolError("Frame is not a JSON object")
    if not message.get("type"):
        raise MorriganProtocolError("Frame has no type declaration")
    return message


def encode_message(message: Mapping[str, Any]) -> str:
    """Serialize an outbound message, validating its ``type`` declaration."""
    msg_type = message.get("type")
    if not isinstance(msg_type, str):
        raise MorriganMessageError(
            "Invalid message 'type' declaration "
            f"(found '{type(msg_type).__name__}', expected 'str')"
        )
    try:
        return json.dumps(dict(message))
    except (TypeError, ValueError, RecursionError) as err:
        raise MorriganMessageError(f"Message is not JSON serializable: {err}") from err


def build_client_state(state: str) -> dict[str, Any]:
    """Construct a client.state frame announcing the client's state."""
    return {"type": CLIENT_STATE_TYPE, "state": state}


def build_stopped_state(reason: str) -> dict[str, Any]:
    """Construct the final client.state frame sent on shutdown."""
    return build_client_state(f"stopped.{reason}")


def build_token_refresh() -> dict[str, Any]:
    """Construct a request for the server to issue a fresh token."""
    return {"type": TOKEN_REFRESH_TYPE}
