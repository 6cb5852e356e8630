"""Services - the user and membership use cases."""

from warden.services.membership import MembershipService
from warden.services.users import LoginResult, UserService

__all__ = [
    "LoginResult",
    "MembershipService",
    "UserService",
]
