"""
Users module - Founder and platform admin accounts.
"""

from timint.modules.users.models import User, UserRole
from timint.modules.users.repository import UserRepository

__all__ = ["User", "UserRole", "UserRepository"]
