"""Security and authentication utilities.

Admin sessions are JWTs in an httpOnly cookie. The token names a role; the
authentication dependency resolves it once into a ``ResolvedRole`` carrying its
permission set, and endpoints only ever ask that object for permissions.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, FrozenSet, Optional, Union

import argon2
import jwt
from fastapi import Depends, HTTPException, Request

from ballotguard.core import config

# Argon2 hasher for the admin password
ph = argon2.PasswordHasher(
    time_cost=2,
    memory_cost=65536,
    parallelism=1,
    hash_len=32,
    salt_len=16
)

# Permissions
MANAGE_ELECTION = "election:manage"
PREVIEW_RESULTS = "results:preview"
VIEW_DIAGNOSTICS = "diagnostics:view"

ROLE_PERMISSIONS: Dict[str, FrozenSet[str]] = {
    "admin": frozenset({MANAGE_ELECTION, PREVIEW_RESULTS, VIEW_DIAGNOSTICS}),
    "observer": frozenset({PREVIEW_RESULTS, VIEW_DIAGNOSTICS}),
}


@dataclass(frozen=True)
class NamedRole:
    """A role known only by name, as carried in a token."""

    name: str


@dataclass(frozen=True)
class ResolvedRole:
    """A role with its permission set looked up."""

    name: str
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    def allows(self, permission: str) -> bool:
        return permission in self.permissions


Role = Union[NamedRole, ResolvedRole]


def resolve_role(role: Role) -> ResolvedRole:
    """Resolve a role to its permissions. Unknown names get no permissions."""
    if isinstance(role, ResolvedRole):
        return role
    return ResolvedRole(name=role.name, permissions=ROLE_PERMISSIONS.get(role.name, frozenset()))


def get_password_hash(password: str) -> str:
    """Hash a password using Argon2."""
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its Argon2 hash."""
    try:
        ph.verify(password_hash, password)
        return True
    except argon2.exceptions.VerifyMismatchError:
        return False


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=config.settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.settings.SECRET_KEY, algorithm=config.settings.ALGORITHM)


def verify_admin_token(request: Request) -> ResolvedRole:
    """Verify the admin JWT cookie and resolve the role it names."""
    token = request.cookies.get("admin_token")

    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = jwt.decode(token, config.settings.SECRET_KEY, algorithms=[config.settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    role_name = payload.get("role")
    if not role_name:
        raise HTTPException(status_code=403, detail="Not authorized")
    return resolve_role(NamedRole(role_name))


def require_permission(permission: str) -> Callable[..., ResolvedRole]:
    """Dependency factory: authenticate, then demand ``permission``."""

    def _check(role: ResolvedRole = Depends(verify_admin_token)) -> ResolvedRole:
        if not role.allows(permission):
            raise HTTPException(status_code=403, detail="Not authorized")
        return role

    return _check


def verify_admin_password(password: str) -> bool:
    """Verify admin password using Argon2.

    Supports both hashed passwords (starting with $argon2) and plaintext
    (development only).
    """
    stored_password = config.settings.ADMIN_PASSWORD

    if stored_password.startswith("$argon2"):
        return verify_password(password, stored_password)
    return password == stored_password
