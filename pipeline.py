"""Canonical item collection plus the filtered, sorted view rendered from it.

The pipeline is the only writer of the canonical list. The view is rebuilt
from scratch by ``compute_view`` after every filter, sort or data change and
is never edited in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from functools import cmp_to_key
from typing import Any, Iterable

from formatting import format_currency, format_quantity
from models import BudgetItem, ItemId, blank_item

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = ("id", "category", "item", "required", "unitCost", "quantity", "subTotal")
PENDING_SORT_VALUE = "new"
DEFAULT_BUDGET = 40000.0
WARNING_PERCENT = 90.0


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def computed_subtotal(item: BudgetItem) -> float:
    """unit cost x quantity, a missing quantity counting as 1.

    The stored ``sub_total`` is deliberately ignored here; the detail page is
    the only place that shows it.
    """

    cost = item.unit_cost if _is_number(item.unit_cost) else 0.0
    qty = item.quantity if _is_number(item.quantity) else 1.0
    return cost * qty


@dataclass(frozen=True)
class FilterState:
    search_term: str = ""
    category: str = ""
    required_only: bool = False

    def matches(self, item: BudgetItem) -> bool:
        term = (self.search_term or "").strip().lower()
        matches_search = not term or any(
            term in value.lower() for value in (item.item, item.category) if value
        )
        matches_category = not self.category or item.category == self.category
        matches_required = not self.required_only or bool(
            item.required and item.required.lower().startswith("y")
        )
        return matches_search and matches_category and matches_required


@dataclass(frozen=True)
class SortState:
    field: str = "id"
    ascending: bool = True

    def activate(self, field_name: str) -> "SortState":
        if field_name not in SORTABLE_FIELDS:
            raise ValueError(f"Cannot sort by {field_name!r}")
        if field_name == self.field:
            return replace(self, ascending=not self.ascending)
        return SortState(field=field_name, ascending=True)


def sort_value(item: BudgetItem, field_name: str) -> Any:
    if field_name == "subTotal":
        return computed_subtotal(item)
    if field_name == "id":
        return PENDING_SORT_VALUE if item.is_pending else item.id.value
    return item.get(field_name)


def compare_values(a: Any, b: Any) -> int:
    if a is None:
        a = ""
    if b is None:
        b = ""
    if _is_number(a) and _is_number(b):
        return (a > b) - (a < b)
    sa = str(a).lower()
    sb = str(b).lower()
    return (sa > sb) - (sa < sb)


def filter_items(items: Iterable[BudgetItem], filters: FilterState) -> list[BudgetItem]:
    return [item for item in items if filters.matches(item)]


def sort_items(items: Iterable[BudgetItem], sort: SortState) -> list[BudgetItem]:
    """Stable sort; descending flips the comparison instead of reversing the list."""

    sign = 1 if sort.ascending else -1

    def _cmp(a: BudgetItem, b: BudgetItem) -> int:
        return sign * compare_values(sort_value(a, sort.field), sort_value(b, sort.field))

    return sorted(items, key=cmp_to_key(_cmp))


@dataclass(frozen=True)
class RowView:
    item: BudgetItem
    subtotal: float

    @property
    def key(self) -> str:
        return self.item.key

    @property
    def id_label(self) -> str:
        return "NEW" if self.item.is_pending else self.item.key

    @property
    def unit_cost_label(self) -> str:
        return format_currency(self.item.unit_cost)

    @property
    def quantity_label(self) -> str:
        return format_quantity(self.item.quantity)

    @property
    def subtotal_label(self) -> str:
        return format_currency(self.subtotal)


@dataclass(frozen=True)
class Summary:
    total_count: int
    visible_count: int
    total_cost: float


@dataclass(frozen=True)
class BudgetView:
    rows: list[RowView]
    summary: Summary

    @property
    def items(self) -> list[BudgetItem]:
        return [row.item for row in self.rows]


@dataclass(frozen=True)
class BudgetMetrics:
    budget: float
    total_cost: float
    remaining: float
    percentage: float
    status: str

    @property
    def progress(self) -> float:
        return min(self.percentage, 100.0)


@dataclass
class BudgetPipeline:
    canonical: list[BudgetItem] = field(default_factory=list)
    filter_state: FilterState = field(default_factory=FilterState)
    sort_state: SortState = field(default_factory=SortState)

    # ---- derived view ----
    def compute_view(self) -> BudgetView:
        visible = sort_items(filter_items(self.canonical, self.filter_state), self.sort_state)
        rows = [RowView(item=item, subtotal=computed_subtotal(item)) for item in visible]
        summary = Summary(
            total_count=sum(1 for item in self.canonical if not item.is_pending),
            visible_count=sum(1 for item in visible if not item.is_pending),
            total_cost=sum(row.subtotal for row in rows),
        )
        return BudgetView(rows=rows, summary=summary)

    def set_filter(self, search_term: str = "", category: str = "", required_only: bool = False) -> None:
        self.filter_state = FilterState(
            search_term=search_term or "",
            category=category or "",
            required_only=bool(required_only),
        )

    def activate_sort(self, field_name: str) -> SortState:
        self.sort_state = self.sort_state.activate(field_name)
        return self.sort_state

    def categories(self) -> list[str]:
        return sorted({item.category for item in self.canonical if item.category and item.category.strip()})

    def metrics(self, budget: float = DEFAULT_BUDGET) -> BudgetMetrics:
        total = sum(computed_subtotal(item) for item in self.canonical if not item.is_pending)
        remaining = budget - total
        percentage = (total / budget) * 100 if budget > 0 else 0.0
        if remaining < 0:
            status = "danger"
        elif percentage >= WARNING_PERCENT:
            status = "warning"
        else:
            status = "good"
        return BudgetMetrics(
            budget=budget,
            total_cost=total,
            remaining=remaining,
            percentage=percentage,
            status=status,
        )

    # ---- canonical mutations ----
    def load(self, items: Iterable[BudgetItem]) -> None:
        self.canonical = list(items)
        logger.debug("Loaded %d budget items", len(self.canonical))

    def find(self, item_id: ItemId) -> BudgetItem | None:
        for item in self.canonical:
            if item.id == item_id:
                return item
        return None

    def index_of(self, item_id: ItemId) -> int:
        for index, item in enumerate(self.canonical):
            if item.id == item_id:
                return index
        return -1

    def has_pending(self) -> bool:
        return any(item.is_pending for item in self.canonical)

    def insert_sentinel(self) -> BudgetItem:
        if self.has_pending():
            raise ValueError("A new item is already being added")
        sentinel = blank_item()
        self.canonical.insert(0, sentinel)
        return sentinel

    def replace(self, item_id: ItemId, new_item: BudgetItem) -> bool:
        index = self.index_of(item_id)
        if index == -1:
            return False
        self.canonical[index] = new_item
        return True

    def apply_field(self, item_id: ItemId, field_name: str, value: Any) -> BudgetItem | None:
        current = self.find(item_id)
        if current is None:
            return None
        updated = current.with_value(field_name, value)
        self.replace(item_id, updated)
        return updated

    def remove(self, item_id: ItemId) -> bool:
        before = len(self.canonical)
        self.canonical = [item for item in self.canonical if item.id != item_id]
        return len(self.canonical) != before
