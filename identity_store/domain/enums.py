"""
Domain enums for the identity store.

Sortable user fields form a closed set: a sort expression can only name a
member of UserSortField.
"""

from enum import Enum


class UserSortField(str, Enum):
    """User columns that listings may be ordered by."""

    USER_NAME = "user_name"
    EMAIL = "email"
    ID = "id"
    NAME = "name"
    SURNAME = "surname"
    PHONE_NUMBER = "phone_number"
    CREATION_TIME = "creation_time"


class SortDirection(str, Enum):
    """Ordering direction for a sort term."""

    ASC = "asc"
    DESC = "desc"
