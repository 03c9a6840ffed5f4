"""Client settings: JSON settings file plus command-line overrides."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from .errors import MorriganConfigError
from .reconnect import DEFAULT_RECONNECT_INTERVAL

_LOGGER = logging.getLogger(__name__)

DEFAULT_PROVIDERS: tuple[str, ...] = (
    "morrigan_client.providers.token",
    "morrigan_client.providers.capability",
    "morrigan_client.providers.connection",
)

DEFAULT_TOKEN_REFRESH_INTERVAL = 8 * 3600.0

AUTH_HEADERS = ("origin", "authorization")

# Keys used by older settings files.
_ALIASES = {
    "reportURL": "server_url",
    "stateDir": "state_dir",
    "tokenFile": "token_file",
}


@dataclass(frozen=True)
class ClientSettings:
    """Configuration for the client runtime.

    Attributes:
        server_url: ws:// or wss:// URL of the server
        providers: Provider import references, loaded in order
        state_dir: Directory for state persisted between runs
        token: Initial token (used when none is persisted, or with force_token)
        token_file: File holding an initial token
        force_token: Replace a persisted token with token/token_file
        token_provider: Registry name of the provider exposing get_token()
        auth_header: How the token is presented ("origin" or "authorization")
        reconnect_interval: Seconds between reconnection attempts
        token_refresh_interval: Seconds between token refresh requests
        always_reconnect: Retry after disconnects until stopped
    """

    server_url: str | None = None
    providers: tuple[Any, ...] = DEFAULT_PROVIDERS
    state_dir: Path = Path("state")
    token: str | None = None
    token_file: Path | None = None
    force_token: bool = False
    token_provider: str = "client"
    auth_header: str = "origin"
    reconnect_interval: float = DEFAULT_RECONNECT_INTERVAL
    token_refresh_interval: float = DEFAULT_TOKEN_REFRESH_INTERVAL
    connect_timeout: float = 15.0
    ping_interval: int | None = 20
    always_reconnect: bool = True
    log_level: str = "INFO"
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.auth_header not in AUTH_HEADERS:
            raise MorriganConfigError(
                f"auth_header must be one of {AUTH_HEADERS}, got {self.auth_header!r}"
            )
        if self.reconnect_interval < 0 or self.token_refresh_interval <= 0:
            raise MorriganConfigError("Intervals must be positive")
        object.__setattr__(self, "state_dir", Path(self.state_dir))
        if self.token_file is not None:
            object.__setattr__(self, "token_file", Path(self.token_file))
        providers = self.providers
        if isinstance(providers, str) or not isinstance(providers, (list, tuple)):
            providers = (providers,)
        object.__setattr__(self, "providers", tuple(providers))

    def with_overrides(self, **overrides: Any) -> ClientSettings:
        """Return a copy with every non-None override applied."""
        return replace(
            self, **{key: value for key, value in overrides.items() if value is not None}
        )


def settings_from_mapping(data: Mapping[str, Any]) -> ClientSettings:
    """Build settings from a decoded settings document.

    Unknown keys are kept in ``extra`` so providers can read their own options.
    """
    known = {f.name for f in fields(ClientSettings)} - {"extra"}
    values: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    for key, value in data.items():
        key = _ALIASES.get(key, key)
        if key in known:
            values[key] = value
        else:
            extra[key] = value

    if extra:
        _LOGGER.debug("Settings keys passed through to providers: %s", sorted(extra))
    try:
        return ClientSettings(**values, extra=extra)
    except TypeError as err:
        raise MorriganConfigError(f"Invalid settings: {err}") from err


def load_settings(path: str | Path) -> ClientSettings:
    """Load settings from a JSON file.

    Raises:
        MorriganConfigError: If the file is missing or not a JSON object
    """
    path = Path(path)
    try:
        with path.open(encoding="utf-8") as handle:
            data = json.load(handle)
    except FileNotFoundError as err:
        raise MorriganConfigError(f"Settings file not found: {path}") from err
    except (OSError, ValueError) as err:
        raise MorriganConfigError(f"Unable to read settings file {path}: {err}") from err

    if not isinstance(data, dict):
        raise MorriganConfigError(f"Settings file {path} must contain a JSON object")
    return settings_from_mapping(data)
