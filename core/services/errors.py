"""
Driver errors as PersistenceError.

Every Postgres- or Valkey-backed collaborator runs its queries inside
wrap_errors(), so Payment.save() sees one exception type for any failed
backing-store call and can keep its pending changes for a retry.
"""

from contextlib import contextmanager
from typing import Iterator

import psycopg2
import redis

from core.exceptions import PersistenceError


@contextmanager
def wrap_errors(action: str) -> Iterator[None]:
    """Re-raise psycopg2 and redis errors as PersistenceError("Could not <action>: ...")."""
    try:
        yield
    except (psycopg2.Error, redis.RedisError) as e:
        raise PersistenceError(f"Could not {action}: {e}") from e
