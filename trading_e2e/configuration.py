"""
Test-run configuration.

A Configuration is built once per test run (from the environment or a JSON
profile file) and passed explicitly to every session. It is immutable after
construction.

Profile file layout:

{
  "preset": {
    "local": {
      "url": "http://localhost:8080",
      "ws-url": "ws://localhost:8090",
      "request-timeout": 30,
      "heartbeat-interval": 10,
      "ignore": {"heartbeat": true, "inactivation": true, "unmatched": false}
    }
  },
  "sessions": {
    "trader1": {"username": "trader1", "password": "secret"}
  }
}
"""

import dataclasses
import ipaddress
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote, urlencode, urlsplit, urlunsplit

from .errors import ConfigurationError

DEFAULT_URL = "http://localhost:8080"
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_HEARTBEAT_INTERVAL = 10.0
DEFAULT_POLL_INTERVAL = 0.1

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class IgnoreOptions:
    """Noise filter: which events and failures are tolerated instead of failing a test."""
    heartbeat: bool = True
    inactivation: bool = True
    unmatched: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "IgnoreOptions":
        if not data:
            return cls()
        return cls(
            heartbeat=bool(data.get("heartbeat", True)),
            inactivation=bool(data.get("inactivation", True)),
            unmatched=bool(data.get("unmatched", False)),
        )


@dataclass(frozen=True)
class Credentials:
    username: str
    password: Optional[str] = None


def _strip_trailing_slash(url: str) -> str:
    url = url.strip()
    return url[:-1] if url.endswith("/") else url


def _with_host_suffix(url: str, suffix: str) -> str:
    """Insert ``suffix`` after the first label of the host (e2e.example.com -> e2e-ws.example.com)."""
    parts = urlsplit(url)
    host = parts.hostname or ""
    try:
        ipaddress.ip_address(host)
        return url
    except ValueError:
        pass
    if "." not in host:
        return url
    first, rest = host.split(".", 1)
    netloc = parts.netloc.replace(host, f"{first}{suffix}.{rest}", 1)
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def build_uri(
    uri: str,
    path_params: Optional[Mapping[str, Any]] = None,
    query_params: Optional[Mapping[str, Any]] = None,
) -> str:
    """Substitute ``{name}`` path parameters and append query parameters."""
    for key, value in (path_params or {}).items():
        uri = uri.replace(f"{{{key}}}", quote(str(value), safe=""))
    if query_params:
        uri = f"{uri}?{urlencode({k: str(v) for k, v in query_params.items()})}"
    return uri


@dataclass(frozen=True)
class Configuration:
    """Resolved settings for one test run."""
    base_url: str = DEFAULT_URL
    ws_url: Optional[str] = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL
    poll_interval: float = DEFAULT_POLL_INTERVAL
    ignore: IgnoreOptions = field(default_factory=IgnoreOptions)
    sessions: Mapping[str, Credentials] = field(default_factory=dict)

    def __post_init__(self):
        if self.request_timeout <= 0:
            raise ConfigurationError(f"request_timeout must be positive, got {self.request_timeout}")
        if self.poll_interval <= 0:
            raise ConfigurationError(f"poll_interval must be positive, got {self.poll_interval}")
        if not self.base_url:
            raise ConfigurationError("base_url must not be empty")

    # ========================================================================
    # Constructors
    # ========================================================================

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Configuration":
        """Build from ENV_URL, E2E_WS_URL, E2E_REQUEST_TIMEOUT and E2E_IGNORE_UNMATCHED."""
        environ = os.environ if environ is None else environ
        try:
            timeout = float(environ.get("E2E_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT))
        except ValueError as e:
            raise ConfigurationError(f"Invalid E2E_REQUEST_TIMEOUT: {e}") from e
        unmatched = environ.get("E2E_IGNORE_UNMATCHED", "").strip().lower() in _TRUE_VALUES
        return cls(
            base_url=environ.get("ENV_URL", DEFAULT_URL),
            ws_url=environ.get("E2E_WS_URL") or None,
            request_timeout=timeout,
            ignore=IgnoreOptions(unmatched=unmatched),
        )

    @classmethod
    def from_file(cls, path, profile: str) -> "Configuration":
        """Build from a JSON profile file (see module docstring)."""
        path = Path(path)
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Cannot read configuration {path}: {e}") from e
        return cls.from_dict(document, profile)

    @classmethod
    def from_dict(cls, document: Mapping[str, Any], profile: str) -> "Configuration":
        presets = document.get("preset") or {}
        if profile not in presets:
            raise ConfigurationError(f"Profile '{profile}' not found (available: {sorted(presets)})")
        preset = presets[profile]
        sessions: Dict[str, Credentials] = {}
        for session_id, entry in (document.get("sessions") or {}).items():
            sessions[session_id] = Credentials(
                username=entry.get("username", session_id),
                password=entry.get("password"),
            )
        return cls(
            base_url=preset.get("url", DEFAULT_URL),
            ws_url=preset.get("ws-url"),
            request_timeout=float(preset.get("request-timeout", DEFAULT_REQUEST_TIMEOUT)),
            heartbeat_interval=float(preset.get("heartbeat-interval", DEFAULT_HEARTBEAT_INTERVAL)),
            poll_interval=float(preset.get("poll-interval", DEFAULT_POLL_INTERVAL)),
            ignore=IgnoreOptions.from_dict(preset.get("ignore")),
            sessions=sessions,
        )

    def replace(self, **changes) -> "Configuration":
        return dataclasses.replace(self, **changes)

    # ========================================================================
    # Credentials and URLs
    # ========================================================================

    def credentials_for(self, session_id: str) -> Credentials:
        """Credentials for a session id; unknown ids are used as the username."""
        return self.sessions.get(session_id) or Credentials(username=session_id)

    @property
    def trader_url(self) -> str:
        return _strip_trailing_slash(self.base_url)

    @property
    def admin_url(self) -> str:
        return _with_host_suffix(self.trader_url, "-admin")

    @property
    def web_socket_url(self) -> str:
        if self.ws_url:
            return _strip_trailing_slash(self.ws_url)
        url = self.trader_url
        if url.startswith("https"):
            url = "wss" + url[len("https"):]
        elif url.startswith("http"):
            url = "ws" + url[len("http"):]
        return _with_host_suffix(url, "-ws")

    @property
    def trader_api_base_url(self) -> str:
        return f"{self.trader_url}/api"

    @property
    def admin_api_base_url(self) -> str:
        return f"{self.admin_url}/api"

    def trader_api_url(self, target: str, path_params=None, query_params=None) -> str:
        return self.trader_api_base_url + build_uri(target, path_params, query_params)

    def admin_api_url(self, target: str, path_params=None, query_params=None) -> str:
        return self.admin_api_base_url + build_uri(target, path_params, query_params)

    def web_socket_url_with_token(self, token: str) -> str:
        return f"{self.web_socket_url}?token={quote(token, safe='')}"
