"""In-process action log store.

Nothing here survives a restart. The session API mirrors the small part
of an ORM session the services use, so call sites read the same either way.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Dict, Generator, Iterable, List, Type, TypeVar

T = TypeVar("T")

# Oldest rows are dropped once a table grows past this.
MAX_ROWS_PER_TABLE = 5000


class LogQuery:
    """Chainable, read-only view over the rows of one table."""

    def __init__(self, rows: Iterable[Any]):
        self._rows = list(rows)

    def filter_by(self, **fields: Any) -> "LogQuery":
        return LogQuery(
            row for row in self._rows
            if all(getattr(row, name, None) == value for name, value in fields.items())
        )

    def where(self, predicate: Callable[[Any], bool]) -> "LogQuery":
        return LogQuery(row for row in self._rows if predicate(row))

    def order_by(self, attribute: str, *, descending: bool = False) -> "LogQuery":
        # Ties keep insertion order, latest first when descending
        rows = list(reversed(self._rows)) if descending else self._rows
        return LogQuery(sorted(rows, key=lambda row: getattr(row, attribute), reverse=descending))

    def limit(self, count: int) -> "LogQuery":
        return LogQuery(self._rows[:count])

    def all(self) -> List[Any]:
        return list(self._rows)

    def first(self) -> Any:
        return self._rows[0] if self._rows else None

    def count(self) -> int:
        return len(self._rows)


class LogSession:
    """Buffers new rows and appends them to the shared store on commit."""

    def __init__(self, store: Dict[Type[Any], List[Any]]):
        self._store = store
        self._pending: List[Any] = []

    def add(self, obj: Any) -> None:
        self._pending.append(obj)

    def commit(self) -> None:
        for obj in self._pending:
            table = self._store.setdefault(type(obj), [])
            table.append(obj)
            if len(table) > MAX_ROWS_PER_TABLE:
                del table[: len(table) - MAX_ROWS_PER_TABLE]
        self._pending.clear()

    def rollback(self) -> None:
        self._pending.clear()

    def query(self, model: Type[T]) -> LogQuery:
        return LogQuery(self._store.get(model, []))


_STORE: Dict[Type[Any], List[Any]] = {}


def init_db() -> None:
    """Start from an empty log."""
    _STORE.clear()


@contextmanager
def get_db_session() -> Generator[LogSession, None, None]:
    """Yield a :class:`LogSession`; uncommitted rows are discarded on error."""
    session = LogSession(_STORE)
    try:
        yield session
    except Exception:
        session.rollback()
        raise
