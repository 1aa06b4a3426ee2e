"""
Data-access error taxonomy.

A lookup that finds nothing is not an error: repositories return ``None``.
Everything else surfaces as a subclass of :class:`DataAccessError`.
"""

from contextlib import contextmanager
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError


class DataAccessError(Exception):
    """Base class for repository and unit of work errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DataAccessError):
    """A staged entity violates a store constraint or misuses its identifier."""


class PersistenceError(DataAccessError):
    """Connectivity or backend failure."""


class CancellationError(DataAccessError):
    """An asynchronous operation was cancelled through its cancel signal.

    ``interrupted`` is True when the operation had already started, so the
    session may hold a partial flush.
    """

    def __init__(self, message: str, interrupted: bool = False):
        super().__init__(message)
        self.interrupted = interrupted


class InvalidStateError(DataAccessError):
    """Operation not valid in the unit of work's current state."""


@contextmanager
def translate_db_errors(operation: str):
    """Re-raise SQLAlchemy errors from ``operation`` as data-access errors."""
    try:
        yield
    except DataAccessError:
        raise
    except (IntegrityError, StaleDataError) as e:
        detail = str(e.orig) if getattr(e, "orig", None) is not None else str(e)
        raise ValidationError(f"{operation} rejected by the store: {detail}") from e
    except SQLAlchemyError as e:
        raise PersistenceError(f"{operation} failed: {e}") from e
