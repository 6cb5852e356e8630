"""Storage abstractions and implementations."""

from warden.storage.base import CacheStorage, MembershipRepository, UserRepository
from warden.storage.local import (
    InMemoryCacheStorage,
    InMemoryMembershipRepository,
    InMemoryUserRepository,
)

__all__ = [
    "CacheStorage",
    "MembershipRepository",
    "UserRepository",
    "InMemoryCacheStorage",
    "InMemoryMembershipRepository",
    "InMemoryUserRepository",
]
