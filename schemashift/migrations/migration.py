"""
Migration data models for schema evolution.

This module defines the core value types for managing database migrations:
- MigrationID: Fixed-width, sortable identifier of a migration
- Migration: An identified pair of forward (UP) and backward (DOWN) SQL

IDs are 14 ASCII digits, zero-padded on the left, usually a
YYYYMMDDHHMMSS timestamp. Because width and charset are fixed, plain string
comparison of two IDs gives the order in which they must be applied.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


class InvalidFormatError(ValueError):
    """Raised when a string is not a valid fixed-width migration ID."""
    pass


@dataclass(frozen=True, order=True)
class MigrationID:
    """
    Identifier of a single migration.

    Attributes:
        raw_value: Fixed-width string representation (14 digits)

    Example:
        >>> MigrationID('20230601120000')
        <MigrationID(20230601120000)>
        >>> MigrationID.from_sequence(7).raw_value
        '00000000000007'
        >>> MigrationID('00000000000002') < MigrationID('00000000000010')
        True
    """

    LENGTH = 14

    raw_value: str

    def __post_init__(self):
        """Reject values that are not exactly LENGTH ASCII digits."""
        if not isinstance(self.raw_value, str):
            raise InvalidFormatError(
                f"Migration ID must be a string, got {type(self.raw_value).__name__}"
            )

        if len(self.raw_value) != self.LENGTH:
            raise InvalidFormatError(
                f"Migration ID must be {self.LENGTH} characters, "
                f"got {len(self.raw_value)}: {self.raw_value!r}"
            )

        # str.isdigit() accepts non-ASCII digits, which would break ordering
        if not (self.raw_value.isascii() and self.raw_value.isdigit()):
            raise InvalidFormatError(
                f"Migration ID must contain only digits 0-9: {self.raw_value!r}"
            )

    @classmethod
    def parse(cls, raw_value: str) -> Optional['MigrationID']:
        """Return a MigrationID, or None if raw_value is not valid."""
        try:
            return cls(raw_value)
        except InvalidFormatError:
            return None

    @classmethod
    def from_sequence(cls, number: int) -> 'MigrationID':
        """
        Build an ID from a sequence number by left-padding with zeros.

        Raises:
            InvalidFormatError: If number is negative or too wide
        """
        if number < 0:
            raise InvalidFormatError(
                f"Migration sequence number must be >= 0, got {number}"
            )
        return cls(str(number).zfill(cls.LENGTH))

    @classmethod
    def from_datetime(cls, moment: datetime) -> 'MigrationID':
        """Build a YYYYMMDDHHMMSS ID from a datetime."""
        return cls(moment.strftime('%Y%m%d%H%M%S'))

    def __str__(self) -> str:
        return self.raw_value

    def __repr__(self) -> str:
        return f"<MigrationID({self.raw_value})>"


@dataclass(frozen=True)
class Migration:
    """
    Represents a single migration.

    A migration carries two SQL scripts:
    - up_sql: statements that apply the migration (forward)
    - down_sql: statements that revert it (backward)

    The SQL is opaque here; it is neither parsed nor validated.

    Attributes:
        id: Migration ID, defines application order
        up_sql: SQL statements for applying the migration
        down_sql: SQL statements for rolling it back
        name: Descriptive name (e.g. 'create_users'), optional

    Example:
        >>> migration = Migration(
        ...     id=MigrationID('20230601120000'),
        ...     up_sql='CREATE TABLE users (id INTEGER PRIMARY KEY);',
        ...     down_sql='DROP TABLE users;',
        ...     name='create_users'
        ... )
        >>> print(migration)
        <Migration(20230601120000, create_users)>
    """

    id: MigrationID
    up_sql: str
    down_sql: str = ''
    name: str = field(default='', compare=False)

    def __lt__(self, other: 'Migration') -> bool:
        """
        Allow sorting migrations by ID.

        Example:
            >>> sorted([second, first])
            [<Migration(00000000000001, ...)>, <Migration(00000000000002, ...)>]
        """
        if not isinstance(other, Migration):
            return NotImplemented
        return self.id < other.id

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Migration({self.id.raw_value}, {self.name or 'unnamed'})>"
