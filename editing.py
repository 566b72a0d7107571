"""Inline editing of budget rows.

Only one row can be edited at a time. Each field saves on its own when it
loses focus; the editor moves ``Editing -> Saving -> Editing`` around the
store call and folds the result back into the pipeline's canonical list.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Union

from models import (
    EDITABLE_FIELDS,
    NUMERIC_FIELDS,
    REQUIRED_CHOICES,
    BudgetItem,
    ItemId,
    Pending,
    Persisted,
    storage_column,
    to_application_model,
    to_storage_model,
)
from pipeline import BudgetPipeline
from repository import BudgetRepository, Err

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Editing:
    row: ItemId


@dataclass(frozen=True)
class Saving:
    row: ItemId
    field: str


EditState = Union[Idle, Editing, Saving]


class EditStateError(Exception):
    """Raised when an edit action arrives for a row that is not being edited."""


@dataclass(frozen=True)
class Notice:
    level: str
    message: str


@dataclass(frozen=True)
class FieldOutcome:
    """What the browser should show in the field after a blur."""

    status: str  # unchanged | local | saved | created | failed
    field: str
    value: Any
    item: BudgetItem | None = None
    notice: Notice | None = None

    @property
    def ok(self) -> bool:
        return self.status != "failed"


def parse_field_value(field: str, raw: Any) -> Any:
    """Coerce a submitted input value into the type stored for ``field``."""

    if field not in EDITABLE_FIELDS:
        raise ValueError(f"{field} cannot be edited")
    if field in NUMERIC_FIELDS:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return None
        try:
            number = float(raw)
        except (TypeError, ValueError):
            raise ValueError(f"{field} must be a number") from None
        if math.isnan(number) or math.isinf(number) or number < 0:
            raise ValueError(f"{field} must be a non-negative number")
        return number
    value = "" if raw is None else str(raw).strip()
    if field == "required" and value not in REQUIRED_CHOICES:
        raise ValueError(f"required must be one of {', '.join(REQUIRED_CHOICES)}")
    return value


def _same_value(field: str, old: Any, new: Any) -> bool:
    if field in NUMERIC_FIELDS:
        return old == new
    return (old or "") == (new or "")


class InlineEditor:
    def __init__(self, pipeline: BudgetPipeline, repository: BudgetRepository) -> None:
        self.pipeline = pipeline
        self.repository = repository
        self.state: EditState = Idle()

    @property
    def editing_row(self) -> ItemId | None:
        if isinstance(self.state, (Editing, Saving)):
            return self.state.row
        return None

    # ---- loading ----
    def reload(self) -> list[Notice]:
        self.state = Idle()
        result = self.repository.list_all()
        if isinstance(result, Err):
            self.pipeline.load([])
            return [Notice("error", "Failed to load budget items from database. Please refresh the page.")]
        self.pipeline.load(to_application_model(record) for record in result.value)
        return []

    # ---- state transitions ----
    def begin_edit(self, item_id: ItemId) -> None:
        if self.pipeline.find(item_id) is None:
            raise KeyError(item_id)
        if self.editing_row is not None and self.editing_row != item_id:
            # Unsaved keystrokes in the other row are dropped, not saved.
            logger.debug("Leaving edit mode for %s", self.editing_row)
        self.state = Editing(item_id)

    def done(self) -> None:
        self.state = Idle()

    def cancel(self) -> None:
        self.state = Idle()

    def blur(self, item_id: ItemId, field: str, raw_value: Any) -> FieldOutcome:
        """Handle a field losing focus: parse, compare, then persist if it changed."""

        if self.state != Editing(item_id):
            raise EditStateError(f"Row {item_id.key} is not being edited")
        item = self.pipeline.find(item_id)
        if item is None:
            self.state = Idle()
            raise EditStateError(f"Row {item_id.key} no longer exists")

        old_value = item.get(field) if field in EDITABLE_FIELDS else None
        try:
            new_value = parse_field_value(field, raw_value)
        except ValueError as exc:
            return FieldOutcome(
                status="failed",
                field=field,
                value=old_value,
                item=item,
                notice=Notice("error", f"{exc}."),
            )

        if isinstance(item_id, Pending):
            return self._save_pending(item, field, old_value, new_value)

        if _same_value(field, old_value, new_value):
            return FieldOutcome(status="unchanged", field=field, value=old_value, item=item)

        self.state = Saving(item_id, field)
        try:
            return self._persist(item_id, field, old_value, new_value)
        finally:
            self.state = Editing(item_id)

    def save_detail_field(self, item_id: Persisted, field: str, raw_value: Any) -> FieldOutcome:
        """Single-field save outside the inline editor (detail page)."""

        item = self.pipeline.find(item_id)
        if item is None:
            return FieldOutcome(
                status="failed", field=field, value=None, notice=Notice("error", "Item not found.")
            )
        old_value = item.get(field)
        try:
            new_value = parse_field_value(field, raw_value)
        except ValueError as exc:
            return FieldOutcome(status="failed", field=field, value=old_value, item=item, notice=Notice("error", f"{exc}."))
        if _same_value(field, old_value, new_value):
            return FieldOutcome(status="unchanged", field=field, value=old_value, item=item)
        return self._persist(item_id, field, old_value, new_value)

    def _persist(self, item_id: Persisted, field: str, old_value: Any, new_value: Any) -> FieldOutcome:
        result = self.repository.update_field(item_id.value, storage_column(field), new_value)
        if isinstance(result, Err):
            logger.warning("Reverting %s on item %s: %s", field, item_id.key, result.error)
            return FieldOutcome(
                status="failed",
                field=field,
                value=old_value,
                item=self.pipeline.find(item_id),
                notice=Notice("error", f"Failed to update {field}. Please try again."),
            )
        updated = self.pipeline.apply_field(item_id, field, new_value)
        return FieldOutcome(status="saved", field=field, value=new_value, item=updated)

    def _save_pending(self, item: BudgetItem, field: str, old_value: Any, new_value: Any) -> FieldOutcome:
        sentinel_id = item.id
        if not _same_value(field, old_value, new_value):
            item = self.pipeline.apply_field(sentinel_id, field, new_value)
        elif not (item.category and item.item):
            return FieldOutcome(status="unchanged", field=field, value=old_value, item=item)
        if not (item.category and item.item):
            return FieldOutcome(status="local", field=field, value=new_value, item=item)

        # Both required fields are present: the row can exist in the store now.
        # An unchanged blur lands here too, which retries a failed create.
        self.state = Saving(sentinel_id, field)
        result = self.repository.create(to_storage_model(item))
        if isinstance(result, Err):
            self.state = Editing(sentinel_id)
            return FieldOutcome(
                status="failed",
                field=field,
                value=new_value,
                item=item,
                notice=Notice("error", "Failed to create item. Please try again."),
            )
        created = to_application_model(result.value)
        self.pipeline.replace(sentinel_id, created)
        self.state = Editing(created.id)
        return FieldOutcome(
            status="created",
            field=field,
            value=new_value,
            item=created,
            notice=Notice("success", "Item created."),
        )

    # ---- rows ----
    def add_row(self) -> Notice | None:
        if self.pipeline.has_pending():
            return Notice("error", "Please complete or delete the existing new item first.")
        sentinel = self.pipeline.insert_sentinel()
        self.begin_edit(sentinel.id)
        return None

    def delete(self, item_id: ItemId) -> Notice | None:
        if self.pipeline.find(item_id) is None:
            return Notice("error", "Item not found.")
        if isinstance(item_id, Pending):
            self.pipeline.remove(item_id)
            self._leave_if_editing(item_id)
            return None
        result = self.repository.remove(item_id.value)
        if isinstance(result, Err):
            return Notice("error", "Failed to delete item. Please try again.")
        self.pipeline.remove(item_id)
        self._leave_if_editing(item_id)
        return Notice("success", "Item deleted successfully.")

    def _leave_if_editing(self, item_id: ItemId) -> None:
        if self.editing_row == item_id:
            self.state = Idle()
