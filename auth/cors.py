"""
auth/cors.py -- Cross-origin policy built from the configured origin list.

The deployment supplies a comma-separated list of origin patterns
(cors.allowed-origins). Each entry is trimmed; blank entries are dropped.
An empty list is fail-closed: no origin is allowed and browsers refuse every
cross-origin read.

Origin pattern syntax:
  https://movieflix.app          exact origin
  https://*.movieflix.app        '*' matches any run of characters
  http://localhost:[3000,5173]   one of the listed ports
  http://localhost:[*]           any port (or none)
  *                              any origin; the request origin is echoed back

Credentials are always allowed -- browser clients send the bearer token in
the Authorization header and must be able to read the response. Every
method and every request header is allowed.

Header negotiation itself is Starlette's CORSMiddleware; this module only
decides which origins it accepts (middleware_options()).

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("movieflix.cors")

_PORT_LIST_RE = re.compile(r":\[(\*|[\d,\s]+)\]$")
# Commas inside a [port,list] belong to the pattern, not the origin list.
_ORIGIN_SEPARATOR_RE = re.compile(r",(?![^\[]*\])")


def parse_allowed_origins(raw: str | None) -> tuple[str, ...]:
    """Split a comma-separated origin list, trimming whitespace and dropping blanks."""
    if not raw:
        return ()
    return tuple(origin.strip() for origin in _ORIGIN_SEPARATOR_RE.split(raw) if origin.strip())


def origin_pattern_to_regex(pattern: str) -> str:
    """Translate one origin pattern into a regex fragment (no anchors)."""
    pattern = pattern.rstrip("/")
    if pattern == "*":
        return ".*"

    port_regex = ""
    m = _PORT_LIST_RE.search(pattern)
    if m:
        pattern = pattern[: m.start()]
        ports = m.group(1)
        if ports == "*":
            port_regex = r"(?::\d+)?"
        else:
            port_regex = ":(?:" + "|".join(re.escape(p.strip()) for p in ports.split(",") if p.strip()) + ")"

    body = ".*".join(re.escape(chunk) for chunk in pattern.split("*"))
    return body + port_regex


@dataclass(frozen=True)
class CorsPolicy:
    """Immutable cross-origin policy applied to every path.

    Usage:
        policy = CorsPolicy.from_origins("http://a.com, http://b.com")
        policy.is_origin_allowed("http://a.com")   # True
        app.add_middleware(CORSMiddleware, **policy.middleware_options())
    """

    allowed_origin_patterns: tuple[str, ...] = ()
    allow_credentials: bool = True
    allowed_methods: tuple[str, ...] = ("*",)
    allowed_headers: tuple[str, ...] = ("*",)

    @classmethod
    def from_origins(cls, raw: str | None) -> CorsPolicy:
        patterns = parse_allowed_origins(raw)
        if not patterns:
            logger.warning("No CORS origins configured -- all cross-origin requests will be refused")
        else:
            logger.info("CORS allowed origin patterns: %s", ", ".join(patterns))
        return cls(allowed_origin_patterns=patterns)

    @classmethod
    def from_settings(cls, settings: Settings) -> CorsPolicy:
        return cls.from_origins(settings.cors_allowed_origins)

    def origin_regex(self) -> str | None:
        """One regex accepting any allowed origin, or None when nothing is allowed."""
        if not self.allowed_origin_patterns:
            return None
        return "(?:" + "|".join(origin_pattern_to_regex(p) for p in self.allowed_origin_patterns) + ")"

    def is_origin_allowed(self, origin: str | None) -> bool:
        regex = self.origin_regex()
        if not origin or regex is None:
            return False
        return re.fullmatch(regex, origin) is not None

    def middleware_options(self) -> dict:
        """Keyword arguments for starlette.middleware.cors.CORSMiddleware."""
        return {
            "allow_origins": [],
            "allow_origin_regex": self.origin_regex(),
            "allow_credentials": self.allow_credentials,
            "allow_methods": list(self.allowed_methods),
            "allow_headers": list(self.allowed_headers),
        }
