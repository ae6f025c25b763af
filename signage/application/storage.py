import logging
from contextlib import contextmanager

from django.db import DatabaseError, transaction

from signage.domain.exceptions import StorageFailure

logger = logging.getLogger(__name__)


@contextmanager
def atomic_operation(operation):
    """
    transaction.atomic() that reports infrastructure failures as StorageFailure.

    Domain exceptions raised inside the block still roll the transaction back
    and propagate unchanged. Only DatabaseError is translated, after rollback.
    """
    try:
        with transaction.atomic():
            yield
    except DatabaseError as exc:
        logger.exception("Storage failure during %s", operation)
        raise StorageFailure(operation) from exc


def is_storable_text(value):
    """
    True when ``value`` can be written to a text column on every backend.

    Lone surrogates cannot be encoded as UTF-8 and PostgreSQL refuses NUL
    characters in both text and jsonb values.
    """
    if "\x00" in value:
        return False
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def is_storable_json(value):
    """Applies is_storable_text to every key and string inside a JSON value."""
    if isinstance(value, str):
        return is_storable_text(value)
    if isinstance(value, dict):
        return all(
            is_storable_text(key) and is_storable_json(item)
            for key, item in value.items()
        )
    if isinstance(value, (list, tuple)):
        return all(is_storable_json(item) for item in value)
    return True
