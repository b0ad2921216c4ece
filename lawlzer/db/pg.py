from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

import psycopg

from lawlzer.errors import StorageError

logger = logging.getLogger(__name__)


def connect(dsn: str) -> psycopg.Connection:
    return psycopg.connect(dsn)


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Translate driver failures into `StorageError` so handlers see one error type."""
    try:
        yield
    except psycopg.Error as e:
        logger.error("Postgres %s failed: %s", operation, type(e).__name__)
        raise StorageError(f"{operation} failed") from e
