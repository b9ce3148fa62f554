"""
Storage-specific exceptions.

This module defines the exception hierarchy for migration target operations,
enabling precise error handling at different layers of the application.
Driver errors raised through SQLAlchemy are mapped onto this hierarchy by
translate_error(); the original exception is kept as __cause__.
"""

from sqlalchemy import exc as sa_exc


class StorageError(Exception):
    """
    Base exception for storage errors.

    All storage-related exceptions inherit from this base class,
    allowing catch-all error handling when needed.
    """
    pass


class StorageConnectionError(StorageError):
    """
    Storage connection failed.

    Raised when:
    - Unable to establish database connection
    - Connection is lost unexpectedly
    - Authentication fails
    """
    pass


class QueryError(StorageError):
    """
    Query execution failed.

    Raised when:
    - SQL syntax error
    - Statement refers to missing tables or columns
    - Constraint violation during query (see IntegrityError)
    """
    pass


class IntegrityError(QueryError):
    """
    Data integrity violation.

    Raised when:
    - Unique or primary key constraint violated (e.g. a migration ID
      recorded twice)
    - Foreign key constraint violated
    - Check constraint violated
    """
    pass


class CorruptStateError(StorageError):
    """
    Bookkeeping table holds a value that is not a valid migration ID.

    Not recoverable locally; the table must be repaired by hand.
    """
    pass


def _is_disconnect(error: BaseException) -> bool:
    if isinstance(error, (sa_exc.DisconnectionError, sa_exc.InterfaceError)):
        return True
    return isinstance(error, sa_exc.DBAPIError) and error.connection_invalidated


def translate_error(error: BaseException) -> StorageError:
    """
    Map a driver or SQLAlchemy error onto the storage error hierarchy.

    Errors that are already StorageError instances are returned as-is.
    The message of the original error is preserved; callers raise the
    result ``from`` the original.

    Args:
        error: Exception raised while talking to the database

    Returns:
        StorageError subclass instance describing the failure
    """
    if isinstance(error, StorageError):
        return error

    if isinstance(error, OSError) or _is_disconnect(error):
        return StorageConnectionError(str(error))

    if isinstance(error, sa_exc.IntegrityError):
        return IntegrityError(str(error))

    return QueryError(str(error))
