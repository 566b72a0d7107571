"""Store access for budget items.

Every public operation returns ``Ok(value)`` or ``Err(error)``; database
exceptions never escape to the caller. The four operations map one to one onto
the store protocol: ordered scan, insert-returning, update-returning and delete.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Generic, TypeVar, Union

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import STORAGE_COLUMNS

logger = logging.getLogger(__name__)

TABLE_ITEMS = "budget_items"
NUMERIC_COLUMNS = ("unit_cost", "quantity", "sub_total")
RECORD_COLUMNS = ("id",) + STORAGE_COLUMNS + ("created_at", "updated_at")
UPDATABLE_COLUMNS = tuple(c for c in STORAGE_COLUMNS if c != "html")

T = TypeVar("T")


class RepositoryError(Exception):
    """Base class for failures reported by the store."""

    label = "Store error"

    def __init__(self, message: str, *, operation: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation


class TransportError(RepositoryError):
    label = "Transport error"


class NotFoundError(RepositoryError):
    label = "Not found"


class ValidationError(RepositoryError):
    label = "Validation error"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    error: RepositoryError

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]


def _normalize_record(row) -> dict[str, Any]:
    record = dict(row)
    for column in NUMERIC_COLUMNS:
        value = record.get(column)
        if isinstance(value, Decimal):
            record[column] = float(value)
    return record


class BudgetRepository:
    def __init__(self, engine: Engine, table: str = TABLE_ITEMS) -> None:
        self.engine = engine
        self.table = table
        self._columns = ", ".join(RECORD_COLUMNS)

    # ---- schema ----
    def ensure_schema(self) -> None:
        """Create the items table and its indexes when missing."""

        if self.engine.dialect.name == "postgresql":
            id_column = "id BIGSERIAL PRIMARY KEY"
            numeric = "NUMERIC(10, 2)"
            stamp = "TIMESTAMPTZ DEFAULT NOW()"
        else:
            id_column = "id INTEGER PRIMARY KEY AUTOINCREMENT"
            numeric = "REAL"
            stamp = "TEXT DEFAULT CURRENT_TIMESTAMP"
        with self.engine.begin() as conn:
            conn.execute(text(f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    {id_column},
                    category TEXT NOT NULL,
                    item TEXT NOT NULL,
                    required TEXT,
                    notes TEXT,
                    unit_cost {numeric},
                    quantity {numeric},
                    sub_total {numeric},
                    md_content TEXT,
                    html TEXT,
                    created_at {stamp},
                    updated_at {stamp}
                )
            """))
            conn.execute(text(f"CREATE INDEX IF NOT EXISTS idx_{self.table}_category ON {self.table}(category)"))
            conn.execute(text(f"CREATE INDEX IF NOT EXISTS idx_{self.table}_required ON {self.table}(required)"))

    # ---- operations ----
    def list_all(self) -> Result[list[dict[str, Any]]]:
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(
                    text(f"SELECT {self._columns} FROM {self.table} ORDER BY id")
                ).mappings().all()
        except SQLAlchemyError as exc:
            return self._failure(TransportError, "list", exc)
        return Ok([_normalize_record(r) for r in rows])

    def create(self, record: dict[str, Any]) -> Result[dict[str, Any]]:
        payload = {column: record.get(column) for column in STORAGE_COLUMNS}
        columns = ", ".join(STORAGE_COLUMNS)
        params = ", ".join(f":{c}" for c in STORAGE_COLUMNS)
        try:
            with self.engine.begin() as conn:
                row = conn.execute(
                    text(f"""
                        INSERT INTO {self.table} ({columns})
                        VALUES ({params})
                        RETURNING {self._columns}
                    """),
                    payload,
                ).mappings().first()
        except IntegrityError as exc:
            return self._failure(ValidationError, "create", exc)
        except SQLAlchemyError as exc:
            return self._failure(TransportError, "create", exc)
        if row is None:
            return self._failure(TransportError, "create", "insert returned no row")
        created = _normalize_record(row)
        logger.info("Created budget item %s", created["id"])
        return Ok(created)

    def update_field(self, item_id: int, column: str, value: Any) -> Result[dict[str, Any]]:
        if column not in UPDATABLE_COLUMNS:
            return self._failure(ValidationError, "update", f"column {column!r} cannot be updated")
        try:
            with self.engine.begin() as conn:
                row = conn.execute(
                    text(f"""
                        UPDATE {self.table}
                        SET {column} = :value,
                            updated_at = CURRENT_TIMESTAMP
                        WHERE id = :id
                        RETURNING {self._columns}
                    """),
                    {"value": value, "id": item_id},
                ).mappings().first()
        except IntegrityError as exc:
            return self._failure(ValidationError, "update", exc)
        except SQLAlchemyError as exc:
            return self._failure(TransportError, "update", exc)
        if row is None:
            return self._failure(NotFoundError, "update", f"budget item {item_id} no longer exists")
        return Ok(_normalize_record(row))

    def remove(self, item_id: int) -> Result[bool]:
        try:
            with self.engine.begin() as conn:
                result = conn.execute(text(f"DELETE FROM {self.table} WHERE id = :id"), {"id": item_id})
        except SQLAlchemyError as exc:
            return self._failure(TransportError, "delete", exc)
        if not result.rowcount:
            logger.info("Delete of budget item %s matched no row", item_id)
        return Ok(True)

    def _failure(self, kind: type[RepositoryError], operation: str, cause) -> Err:
        error = kind(str(cause), operation=operation)
        if kind is TransportError:
            logger.error("%s failed on %s: %s", operation, self.table, cause)
        else:
            logger.warning("%s rejected on %s: %s", operation, self.table, cause)
        return Err(error)
