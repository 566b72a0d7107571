"""Budget line items and the mapping to and from the ``budget_items`` table."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Union

REQUIRED_CHOICES = ("Yes", "No", "Maybe", "Optional")
DEFAULT_REQUIRED = "No"
PENDING_KEY = "new"

# Application field name -> BudgetItem attribute / storage column.
FIELD_ATTRS = {
    "id": "id",
    "category": "category",
    "item": "item",
    "required": "required",
    "notes": "notes",
    "unitCost": "unit_cost",
    "quantity": "quantity",
    "subTotal": "sub_total",
    "mdContent": "md_content",
}
NUMERIC_FIELDS = ("unitCost", "quantity", "subTotal")
EDITABLE_FIELDS = ("category", "item", "required", "notes", "unitCost", "quantity", "mdContent")
STORAGE_COLUMNS = (
    "category",
    "item",
    "required",
    "notes",
    "unit_cost",
    "quantity",
    "sub_total",
    "md_content",
    "html",
)


@dataclass(frozen=True)
class Persisted:
    value: int

    @property
    def key(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class Pending:
    """The client-only id of the single row that has not been created yet."""

    @property
    def key(self) -> str:
        return PENDING_KEY


ItemId = Union[Pending, Persisted]


def parse_item_key(key: str | int) -> ItemId:
    """Turn a URL segment (``"12"`` or ``"new"``) back into an ItemId."""

    raw = str(key).strip().lower()
    if raw == PENDING_KEY:
        return Pending()
    if raw.isdigit():
        return Persisted(int(raw))
    raise ValueError(f"Not an item id: {key!r}")


@dataclass
class BudgetItem:
    id: ItemId
    category: str | None = ""
    item: str | None = ""
    required: str | None = DEFAULT_REQUIRED
    notes: str | None = ""
    unit_cost: float | None = None
    quantity: float | None = None
    sub_total: float | None = None
    md_content: str | None = ""
    html: str | None = None

    @property
    def is_pending(self) -> bool:
        return isinstance(self.id, Pending)

    @property
    def key(self) -> str:
        return self.id.key

    def get(self, field: str) -> Any:
        return getattr(self, attribute_for(field))

    def with_value(self, field: str, value: Any) -> "BudgetItem":
        return replace(self, **{attribute_for(field): value})


def attribute_for(field: str) -> str:
    try:
        return FIELD_ATTRS[field]
    except KeyError:
        raise ValueError(f"Unknown field: {field!r}") from None


def storage_column(field: str) -> str:
    return attribute_for(field)


def blank_item() -> BudgetItem:
    return BudgetItem(id=Pending())


def to_application_model(record: Mapping[str, Any]) -> BudgetItem:
    """Build a BudgetItem from a stored row. Values, including None, pass through as-is."""

    known = {f.name for f in fields(BudgetItem)} - {"id"}
    values = {name: record.get(name) for name in known if name in record}
    return BudgetItem(id=Persisted(int(record["id"])), **values)


def to_storage_model(item: BudgetItem) -> dict[str, Any]:
    """Row payload for insert. Falsy numbers and empty markdown become NULL, not zero."""

    return {
        "category": item.category,
        "item": item.item,
        "required": item.required,
        "notes": item.notes,
        "unit_cost": item.unit_cost or None,
        "quantity": item.quantity or None,
        "sub_total": item.sub_total or None,
        "md_content": item.md_content or None,
        "html": None,
    }
