"""
User roles enumeration.

Defines the role types carried in tokens issued by the studio's auth service.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Studio staff with billing access
        INSTRUCTOR: Teaches classes, no billing access
        FAMILY: Guardian account (default role)
    """
    ADMIN = "ADMIN"
    INSTRUCTOR = "INSTRUCTOR"
    FAMILY = "FAMILY"
