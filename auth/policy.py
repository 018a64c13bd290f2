"""
auth/policy.py -- URL access rules: which routes are public, which need a bearer token.

Rules are an ordered tuple of (pattern, method, access) entries evaluated
first-match-wins, so more specific patterns are declared first. A request
that matches no rule requires authentication (default-deny).

Pattern syntax is Ant-style:
  /api/health     exact path
  /api/auth/**    the prefix itself and anything below it
  /api/*/poster   '*' matches within one path segment

The policy is a pure function of (method, path). It holds no per-request
state and is shared read-only across concurrent requests.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum


class AccessLevel(str, Enum):
    PUBLIC = "public"
    AUTHENTICATED = "authenticated"


_TOKEN_RE = re.compile(r"\*\*|\*")


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Translate an Ant-style path pattern into an anchored regex."""
    tail = ""
    if pattern.endswith("/**"):
        pattern = pattern[:-3]
        tail = r"(?:/.*)?"
    parts: list[str] = []
    pos = 0
    for m in _TOKEN_RE.finditer(pattern):
        parts.append(re.escape(pattern[pos : m.start()]))
        parts.append(".*" if m.group() == "**" else "[^/]*")
        pos = m.end()
    parts.append(re.escape(pattern[pos:]))
    return re.compile("".join(parts) + tail)


def _normalize_path(path: str) -> str:
    if not path:
        return "/"
    if len(path) > 1 and path.endswith("/"):
        return path.rstrip("/") or "/"
    return path


@dataclass(frozen=True)
class RouteRule:
    """One access rule. method=None matches every HTTP method."""

    pattern: str
    access: AccessLevel
    method: str | None = None
    _regex: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_regex", compile_pattern(self.pattern))
        if self.method is not None:
            object.__setattr__(self, "method", self.method.upper())

    def matches(self, method: str, path: str) -> bool:
        if self.method is not None and method.upper() != self.method:
            return False
        return self._regex.fullmatch(path) is not None


def permit_all(pattern: str, method: str | None = None) -> RouteRule:
    return RouteRule(pattern, AccessLevel.PUBLIC, method)


def require_authentication(pattern: str, method: str | None = None) -> RouteRule:
    return RouteRule(pattern, AccessLevel.AUTHENTICATED, method)


DEFAULT_RULES: tuple[RouteRule, ...] = (
    # CORS preflight never carries credentials
    permit_all("/**", "OPTIONS"),
    permit_all("/"),
    permit_all("/api/health"),
    permit_all("/api/auth/**"),
    permit_all("/api/movies/**", "GET"),
    require_authentication("/api/user/**"),
    require_authentication("/api/logs/**"),
    require_authentication("/api/groups/**"),
    require_authentication("/api/media/**"),
)


class AccessPolicy:
    """First-match-wins evaluator over an ordered rule list.

    Usage:
        policy = AccessPolicy()
        policy.required_access("GET", "/api/movies/123")   # AccessLevel.PUBLIC
        policy.is_permitted("GET", "/api/user/me", authenticated=False)  # False
    """

    def __init__(
        self,
        rules: tuple[RouteRule, ...] = DEFAULT_RULES,
        fallback: AccessLevel = AccessLevel.AUTHENTICATED,
    ) -> None:
        self.rules = tuple(rules)
        self.fallback = fallback

    def match(self, method: str, path: str) -> RouteRule | None:
        """Return the first rule matching the request, or None."""
        path = _normalize_path(path)
        for rule in self.rules:
            if rule.matches(method, path):
                return rule
        return None

    def required_access(self, method: str, path: str) -> AccessLevel:
        rule = self.match(method, path)
        return rule.access if rule is not None else self.fallback

    def is_permitted(self, method: str, path: str, authenticated: bool) -> bool:
        if authenticated:
            return True
        return self.required_access(method, path) is AccessLevel.PUBLIC
