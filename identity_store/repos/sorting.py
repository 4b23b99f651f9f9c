"""Sort-expression parsing and ordering for user listings.

A sort expression is a comma separated list of terms, each a field name
optionally followed by ``asc`` or ``desc``:

    "user_name"
    "email desc"
    "surname asc, name asc"

Field names are matched case-insensitively and with underscores ignored, so
"UserName", "username" and "user_name" all name UserSortField.USER_NAME.
"""

from typing import Any

from sqlalchemy import Select

from identity_store.core.errors import InvalidSortFieldError
from identity_store.db.models import IdentityUser
from identity_store.domain.enums import SortDirection, UserSortField

SortTerm = tuple[UserSortField, SortDirection]

DEFAULT_SORTING: list[SortTerm] = [(UserSortField.USER_NAME, SortDirection.ASC)]

_FIELD_LOOKUP: dict[str, UserSortField] = {
    field.value.replace("_", ""): field for field in UserSortField
}

_SORT_COLUMNS: dict[UserSortField, Any] = {
    UserSortField.USER_NAME: IdentityUser.user_name,
    UserSortField.EMAIL: IdentityUser.email,
    UserSortField.ID: IdentityUser.id,
    UserSortField.NAME: IdentityUser.name,
    UserSortField.SURNAME: IdentityUser.surname,
    UserSortField.PHONE_NUMBER: IdentityUser.phone_number,
    UserSortField.CREATION_TIME: IdentityUser.creation_time,
}


def _parse_field(token: str, sorting: str) -> UserSortField:
    field = _FIELD_LOOKUP.get(token.replace("_", "").lower())
    if field is None:
        raise InvalidSortFieldError(
            f"Cannot sort users by '{token}'",
            details={
                "sorting": sorting,
                "field": token,
                "allowed_fields": [f.value for f in UserSortField],
            },
        )
    return field


def _parse_direction(token: str, sorting: str) -> SortDirection:
    try:
        return SortDirection(token.lower())
    except ValueError:
        raise InvalidSortFieldError(
            f"Unknown sort direction '{token}'",
            details={"sorting": sorting, "direction": token},
        )


def parse_sorting(sorting: str | None) -> list[SortTerm]:
    """
    Parse a sort expression into ordered (field, direction) terms.

    Args:
        sorting: Sort expression, or None/blank for the default ordering

    Returns:
        List of sort terms; DEFAULT_SORTING when sorting is None or blank

    Raises:
        InvalidSortFieldError: If a term names an unknown field or direction,
            or has more than two words
    """
    if sorting is None or not sorting.strip():
        return list(DEFAULT_SORTING)

    terms: list[SortTerm] = []
    for raw_term in sorting.split(","):
        words = raw_term.split()
        if not words or len(words) > 2:
            raise InvalidSortFieldError(
                f"Malformed sort term '{raw_term.strip()}'",
                details={"sorting": sorting},
            )

        field = _parse_field(words[0], sorting)
        direction = _parse_direction(words[1], sorting) if len(words) == 2 else SortDirection.ASC
        terms.append((field, direction))

    return terms


def apply_sorting(stmt: Select, terms: list[SortTerm]) -> Select:
    """Order a user query by the given terms.

    Ties are broken by ascending id so that skip/take pages are stable.
    """
    clauses = []
    for field, direction in terms:
        column = _SORT_COLUMNS[field]
        clauses.append(column.desc() if direction == SortDirection.DESC else column.asc())

    if all(field != UserSortField.ID for field, _ in terms):
        clauses.append(IdentityUser.id.asc())

    return stmt.order_by(*clauses)
