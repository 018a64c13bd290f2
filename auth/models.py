"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the
security chain do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered MovieFlix account.

    email is the login identifier and the JWT subject. It is stored
    lower-cased so lookups are case-insensitive.
    """

    email: str
    hashed_password: str
    display_name: str = ""
    id: int | None = None
    created_at: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class Principal:
    """Identity attached to a request by the bearer-token step.

    Re-established from the token on every request -- nothing about the
    caller survives between requests.
    """

    user_id: int
    email: str
