"""Claim value type used to look users up by claim."""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Claim:
    """A (type, value) pair, e.g. Claim("department", "finance")."""

    type: str
    value: str | None
