# Console front end for the budget planner.
# Lets a user work with the same budget_items table from a terminal:
# list items
# search by item or category
# totals by category
# add an item

import logging
import sys

import pandas as pd
from sqlalchemy import create_engine

from config import AppConfig
from editing import parse_field_value
from formatting import format_currency
from models import BudgetItem, Pending, to_application_model, to_storage_model
from pipeline import BudgetPipeline, computed_subtotal
from repository import BudgetRepository, Err

logger = logging.getLogger(__name__)


def main(argv=None):
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    args = sys.argv[1:] if argv is None else argv
    settings = AppConfig.from_env()
    db_url = args[0] if args else settings.database_url

    engine = create_engine(db_url)
    repository = BudgetRepository(engine)
    repository.ensure_schema()
    pipeline = BudgetPipeline()

    # User input loop
    while True:
        print("\nChoose an input:")
        print("1. Show items")
        print("2. Search items")
        print("3. Summary")
        print("4. Add item")
        print("5. Quit")
        choice = input("> ")

        if choice == "1":
            if load_items(repository, pipeline):
                pipeline.set_filter()
                show_items(pipeline)
        elif choice == "2":
            search = input("Search: ")
            category = input("Category (blank for all): ")
            required_only = input("Required only? [y/N]: ").strip().lower().startswith("y")
            if load_items(repository, pipeline):
                pipeline.set_filter(search, category, required_only)
                show_items(pipeline)
        elif choice == "3":
            if load_items(repository, pipeline):
                show_summary(pipeline, settings.budget)
        elif choice == "4":
            category = input("Category: ")
            item = input("Item: ")
            unit_cost = input("Unit cost: ")
            quantity = input("Quantity (blank for 1): ")
            add_item(repository, category, item, unit_cost, quantity)
        elif choice == "5":
            print("Goodbye :)")
            break
        else:
            print("Unknown command")


def load_items(repository, pipeline):
    result = repository.list_all()
    if isinstance(result, Err):
        print(f"Could not load items: {result.error}")
        return False
    pipeline.load(to_application_model(record) for record in result.value)
    return True


def items_frame(items):
    rows = [{
        'id': item.key,
        'category': item.category or '',
        'item': item.item or '',
        'required': item.required or '',
        'unit_cost': item.unit_cost,
        'quantity': item.quantity,
        'subtotal': computed_subtotal(item),
    } for item in items]
    return pd.DataFrame(rows, columns=['id', 'category', 'item', 'required', 'unit_cost', 'quantity', 'subtotal'])


def category_totals(items):
    df = items_frame(items)
    if df.empty:
        return pd.DataFrame(columns=['category', 'items', 'total'])
    grouped = df.groupby('category', sort=True).agg(items=('id', 'count'), total=('subtotal', 'sum'))
    return grouped.reset_index()


def show_items(pipeline):
    view = pipeline.compute_view()
    if not view.rows:
        print("No items found matching your filters :(")
        return
    print(f"\nShowing {view.summary.visible_count} of {view.summary.total_count} items:")
    print(items_frame(view.items).to_string(index=False))
    print(f"Overall: {format_currency(view.summary.total_cost)}")


def show_summary(pipeline, budget):
    # Totals by category over everything, then the budget position
    print("\nTotals by category:")
    print(category_totals(pipeline.canonical).to_string(index=False))

    metrics = pipeline.metrics(budget)
    print(f"\nTotal cost: {format_currency(metrics.total_cost)}")
    print(f"Budget:     {format_currency(metrics.budget)}")
    sign = "-" if metrics.remaining < 0 else ""
    print(f"Remaining:  {sign}{format_currency(abs(metrics.remaining))}")
    print(f"Used:       {metrics.percentage:.1f}% ({metrics.status})")


def add_item(repository, category, item, unit_cost, quantity):
    try:
        cost = parse_field_value("unitCost", unit_cost)
        qty = parse_field_value("quantity", quantity)
    except ValueError as exc:
        print(f"{exc}.")
        return None
    if not category.strip() or not item.strip():
        print("Category and item are required.")
        return None

    new_item = BudgetItem(id=Pending(), category=category.strip(), item=item.strip(), unit_cost=cost, quantity=qty)
    result = repository.create(to_storage_model(new_item))
    if isinstance(result, Err):
        print(f"Failed to create item: {result.error}")
        return None
    created = to_application_model(result.value)
    print(f"Added item {created.key}: {created.item} ({format_currency(computed_subtotal(created))})")
    return created


if __name__ == "__main__":
    main()
