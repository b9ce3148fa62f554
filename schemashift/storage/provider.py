"""
Connection providers for migration targets.

A provider tells the target where its connection comes from, and with that
who is responsible for closing it:

- SharedConnection: the caller already holds an open AsyncConnection and
  keeps ownership. The target runs queries on it but never closes it.
- CreateNewConnection: the target creates its own engine and connection
  from a ConnectionConfiguration on first use, and closes it on error or
  shutdown.
"""

from dataclasses import dataclass
from typing import Union

from sqlalchemy.ext.asyncio import AsyncConnection

from schemashift.config import ConnectionConfiguration


@dataclass(frozen=True)
class SharedConnection:
    """Connection owned and managed by the caller."""

    connection: AsyncConnection


@dataclass(frozen=True)
class CreateNewConnection:
    """Parameters for a connection the target creates and owns."""

    configuration: ConnectionConfiguration


ConnectionProvider = Union[SharedConnection, CreateNewConnection]


def is_owned(provider: ConnectionProvider) -> bool:
    """Return True if the target owns (and must close) the connection."""
    if isinstance(provider, CreateNewConnection):
        return True
    if isinstance(provider, SharedConnection):
        return False
    raise TypeError(f"Unknown connection provider: {provider!r}")
