#!/usr/bin/env python3
"""In‑memory user directory.

Users are only ever added, never removed, so ``id`` doubles as the insertion
position.  Both lookups go through explicit dicts rather than relying on that
position.
"""

from __future__ import annotations

from typing import Dict, Iterator, Optional

from .protocol import MAX_USERS, Address, User

__all__ = ["DirectoryError", "DirectoryFull", "DuplicateAddress", "UserDirectory"]


class DirectoryError(Exception):
    """Base class for rejected registrations."""


class DirectoryFull(DirectoryError):
    """No more one‑byte ids left."""


class DuplicateAddress(DirectoryError):
    """The address already belongs to a registered user."""

    def __init__(self, user: User) -> None:
        super().__init__(f"{user.addr} is already registered as #{user.id} ({user.name})")
        self.user = user


class UserDirectory:
    """address ➜ user and id ➜ user, kept in step."""

    def __init__(self, capacity: int = MAX_USERS) -> None:
        self.capacity = capacity
        self._by_addr: Dict[Address, User] = {}
        self._by_id: Dict[int, User] = {}

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self) -> Iterator[User]:
        # dicts keep insertion order ⇒ ascending ids
        return iter(self._by_id.values())

    def find_by_address(self, addr: Address) -> Optional[User]:
        return self._by_addr.get(addr)

    def find_by_id(self, user_id: int) -> Optional[User]:
        return self._by_id.get(user_id)

    def register(self, addr: Address, name: str) -> User:
        """Append a new user whose id is the current directory size.

        Raises:
            DuplicateAddress: ``addr`` already has a user.
            DirectoryFull: ``capacity`` users already exist.
        """
        existing = self._by_addr.get(addr)
        if existing is not None:
            raise DuplicateAddress(existing)
        if len(self) >= self.capacity:
            raise DirectoryFull(f"directory holds {self.capacity} users")

        user = User(addr, len(self), name)
        self._by_addr[addr] = user
        self._by_id[user.id] = user
        return user

    def update_color(self, user_id: int, color: int) -> bool:
        """Replace a user's color in place; False if the id is unknown."""
        user = self._by_id.get(user_id)
        if user is None:
            return False
        user.color = color
        return True

    def others(self, user: User) -> Iterator[User]:
        """Every registered user except ``user``, in id order."""
        return (u for u in self if u.id != user.id)
