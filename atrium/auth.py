"""Caller identity for Atrium.

Credential checking and session storage are external collaborators; this
module defines the narrow interfaces Atrium calls them through, a
process-local default for each, and the FastAPI dependencies that turn a
bearer session key into the caller's role set.
"""

from __future__ import annotations

import abc
import hmac
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

ADMIN_ROLE = "admin"

bearer_scheme = HTTPBearer(auto_error=False)


class AuthError(Exception):
    """Raised when a principal cannot be verified."""


@dataclass(frozen=True)
class Identity:
    id: str
    roles: frozenset[str]

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "roles": sorted(self.roles)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Identity":
        return cls(id=str(data["id"]), roles=frozenset(data.get("roles") or ()))


# ── Collaborator interfaces ───────────────────────────────────────

class IdentityVerifier(abc.ABC):
    """Authenticates a principal (directory service, IdP, ...)."""

    @abc.abstractmethod
    def verify(self, principal: str, secret: str) -> Identity:
        """Return the verified identity or raise :class:`AuthError`."""
        raise NotImplementedError


class SessionStore(abc.ABC):
    """Key/value store with per-key TTL (Redis in production)."""

    @abc.abstractmethod
    def get(self, key: str) -> Any | None:
        raise NotImplementedError

    @abc.abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def delete(self, key: str) -> None:
        raise NotImplementedError


# ── Process-local implementations ─────────────────────────────────

class StaticIdentityVerifier(IdentityVerifier):
    """Verifies against a fixed ``{principal: (secret, roles)}`` table."""

    def __init__(self, users: dict[str, tuple[str, list[str]]]) -> None:
        self._users = dict(users)

    def verify(self, principal: str, secret: str) -> Identity:
        entry = self._users.get(principal)
        if entry is None or not hmac.compare_digest(entry[0].encode(), secret.encode()):
            raise AuthError("Invalid credentials")
        return Identity(id=principal, roles=frozenset(entry[1]))


class InMemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: dict[str, tuple[Any, float]] = {}

    def get(self, key: str) -> Any | None:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            value, expires = item
            if expires < time.monotonic():
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        with self._lock:
            self._data[key] = (value, time.monotonic() + ttl_seconds)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


# ── Session helpers ───────────────────────────────────────────────

SESSION_PREFIX = "sess:"


def open_session(store: SessionStore, identity: Identity, ttl_seconds: int) -> str:
    key = secrets.token_urlsafe(32)
    store.set(SESSION_PREFIX + key, identity.to_dict(), ttl_seconds)
    return key


def close_session(store: SessionStore, key: str) -> None:
    store.delete(SESSION_PREFIX + key)


def lookup_session(store: SessionStore, key: str) -> Identity | None:
    data = store.get(SESSION_PREFIX + key)
    if not data:
        return None
    return Identity.from_dict(data)


# ── FastAPI dependencies ──────────────────────────────────────────

async def optional_identity(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Identity | None:
    """The caller's identity, or None for anonymous callers."""
    if creds is None:
        return None
    identity = lookup_session(request.app.state.sessions, creds.credentials)
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session")
    return identity


async def require_identity(identity: Identity | None = Depends(optional_identity)) -> Identity:
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return identity


async def require_admin(identity: Identity = Depends(require_identity)) -> Identity:
    """Dependency that ensures the caller holds the admin role."""
    if ADMIN_ROLE not in identity.roles:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return identity
