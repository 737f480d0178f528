"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in fleet/models.py -- dataclasses own domain shape; stores and services do
the work.

Layer rule: no imports from api/ or fleet/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered operator.

    email is the login identifier and is unique across the store.
    hashed_password is a bcrypt hash; the plaintext is never persisted and is
    never seen again after registration.
    Identity (id, name, email) is immutable after registration.
    """

    name: str
    email: str
    hashed_password: str
    id: int | None = None
    created_at: str | None = None
