"""Client telemetry appended to outgoing authorize and logout URLs."""

import base64
import json
import platform

from webauth import __version__

TELEMETRY_PARAM = "auth0Client"


class Telemetry:
    """Encodes the client name and version as a query parameter."""

    def __init__(self, name: str = "webauth", version: str = __version__, enabled: bool = True):
        self.name = name
        self.version = version
        self.enabled = enabled

    @property
    def value(self) -> str:
        payload = {
            "name": self.name,
            "version": self.version,
            "env": {"python": platform.python_version()},
        }
        raw = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")

    def decorate(self, items: list[tuple[str, str]]) -> list[tuple[str, str]]:
        """Return ``items`` with the telemetry parameter appended when enabled."""
        if not self.enabled:
            return list(items)
        return [*[(k, v) for k, v in items if k != TELEMETRY_PARAM], (TELEMETRY_PARAM, self.value)]
