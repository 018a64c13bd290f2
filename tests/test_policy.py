"""Unit tests for auth/policy.py -- route access rules.

Covers:
- OPTIONS is public on every path (CORS preflight)
- Public routes: /, /api/health, /api/auth/**, GET /api/movies/**
- Protected prefixes: /api/user/**, /api/logs/**, /api/groups/**, /api/media/**
- Default-deny for anything unmatched
- Ant-style pattern semantics and first-match-wins ordering
"""

import pytest

from auth.policy import (
    AccessLevel,
    AccessPolicy,
    RouteRule,
    compile_pattern,
    permit_all,
    require_authentication,
)


@pytest.fixture
def policy() -> AccessPolicy:
    return AccessPolicy()


@pytest.mark.parametrize("path", ["/", "/api/user/profile", "/api/media/watchlist/7", "/nowhere"])
def test_options_always_permitted(policy, path):
    assert policy.required_access("OPTIONS", path) is AccessLevel.PUBLIC
    assert policy.is_permitted("OPTIONS", path, authenticated=False)


@pytest.mark.parametrize(
    "method,path",
    [
        ("GET", "/"),
        ("GET", "/api/health"),
        ("POST", "/api/auth/login"),
        ("GET", "/api/auth/verify"),
        ("POST", "/api/auth"),
        ("GET", "/api/movies/123"),
        ("GET", "/api/movies"),
        ("GET", "/api/movies/popular/page/2"),
    ],
)
def test_public_routes(policy, method, path):
    assert policy.is_permitted(method, path, authenticated=False)


@pytest.mark.parametrize(
    "path",
    ["/api/user/profile", "/api/logs", "/api/logs/2024", "/api/groups/5/members", "/api/media/favorites"],
)
def test_protected_prefixes_deny_anonymous(policy, path):
    assert policy.required_access("GET", path) is AccessLevel.AUTHENTICATED
    assert not policy.is_permitted("GET", path, authenticated=False)
    assert policy.is_permitted("GET", path, authenticated=True)


def test_movies_only_public_for_get(policy):
    assert not policy.is_permitted("POST", "/api/movies/123", authenticated=False)
    assert not policy.is_permitted("DELETE", "/api/movies/123", authenticated=False)


def test_unmatched_paths_require_authentication(policy):
    assert policy.match("GET", "/api/admin/stats") is None
    assert policy.required_access("GET", "/api/admin/stats") is AccessLevel.AUTHENTICATED
    assert not policy.is_permitted("GET", "/favicon.ico", authenticated=False)


def test_health_is_exact_match(policy):
    assert not policy.is_permitted("GET", "/api/health/details", authenticated=False)
    assert not policy.is_permitted("GET", "/api/healthz", authenticated=False)


def test_trailing_slash_ignored(policy):
    assert policy.is_permitted("GET", "/api/health/", authenticated=False)


def test_prefix_does_not_match_sibling_names(policy):
    # /api/auth/** must not open up /api/authors
    assert not policy.is_permitted("GET", "/api/authors", authenticated=False)
    assert not policy.is_permitted("GET", "/api/moviesecret", authenticated=False)


def test_method_matching_is_case_insensitive(policy):
    assert policy.is_permitted("get", "/api/movies/1", authenticated=False)
    assert policy.is_permitted("options", "/api/user/me", authenticated=False)


def test_first_match_wins():
    rules = (
        permit_all("/api/user/avatar/**", "GET"),
        require_authentication("/api/user/**"),
    )
    policy = AccessPolicy(rules)
    assert policy.is_permitted("GET", "/api/user/avatar/9.png", authenticated=False)
    assert not policy.is_permitted("GET", "/api/user/me", authenticated=False)

    reversed_policy = AccessPolicy(tuple(reversed(rules)))
    assert not reversed_policy.is_permitted("GET", "/api/user/avatar/9.png", authenticated=False)


def test_custom_fallback():
    policy = AccessPolicy((), fallback=AccessLevel.PUBLIC)
    assert policy.is_permitted("GET", "/anything", authenticated=False)


class TestCompilePattern:
    def test_single_star_stays_in_segment(self):
        regex = compile_pattern("/api/*/poster")
        assert regex.fullmatch("/api/42/poster")
        assert not regex.fullmatch("/api/42/x/poster")

    def test_root_double_star_matches_everything(self):
        regex = compile_pattern("/**")
        assert regex.fullmatch("/")
        assert regex.fullmatch("/a/b/c")

    def test_literal_characters_are_escaped(self):
        regex = compile_pattern("/api/v1.0/x")
        assert regex.fullmatch("/api/v1.0/x")
        assert not regex.fullmatch("/api/v1a0/x")


def test_route_rule_normalizes_method():
    rule = RouteRule("/x", AccessLevel.PUBLIC, "get")
    assert rule.method == "GET"
    assert rule.matches("GET", "/x")
