import unittest

from models import BudgetItem, Pending, Persisted
from pipeline import (
    BudgetPipeline,
    FilterState,
    SortState,
    compare_values,
    computed_subtotal,
    filter_items,
    sort_items,
)


def make(item_id, **values):
    return BudgetItem(id=Persisted(item_id), **values)


class FilterTests(unittest.TestCase):
    def setUp(self):
        self.items = [
            make(1, category="Venue", item="Hall", required="Yes", unit_cost=1000.0, quantity=1.0),
            make(2, category="Flowers", item="Bouquet", required="no", unit_cost=80.0, quantity=3.0),
            make(3, category="Venue", item="Chairs", required="yes please", unit_cost=5.0, quantity=100.0),
            make(4, category="Music", item="Band", required=None, unit_cost=None),
        ]

    def test_search_matches_item_case_insensitively(self):
        result = filter_items(self.items, FilterState(search_term="hall"))
        self.assertEqual([i.id.value for i in result], [1])
        self.assertEqual(filter_items(self.items, FilterState(search_term="zzz")), [])

    def test_search_matches_category(self):
        result = filter_items(self.items, FilterState(search_term="VEN"))
        self.assertEqual([i.id.value for i in result], [1, 3])

    def test_category_is_exact_match(self):
        self.assertEqual(len(filter_items(self.items, FilterState(category="Venue"))), 2)
        self.assertEqual(filter_items(self.items, FilterState(category="venue")), [])

    def test_required_only_uses_y_prefix(self):
        result = filter_items(self.items, FilterState(required_only=True))
        self.assertEqual([i.id.value for i in result], [1, 3])

    def test_predicates_combine_with_and(self):
        result = filter_items(self.items, FilterState(search_term="chairs", category="Venue", required_only=True))
        self.assertEqual([i.id.value for i in result], [3])
        result = filter_items(self.items, FilterState(search_term="hall", category="Flowers"))
        self.assertEqual(result, [])

    def test_filter_result_is_order_preserving_subset(self):
        combos = [
            FilterState(),
            FilterState(search_term="e"),
            FilterState(category="Venue"),
            FilterState(required_only=True),
            FilterState(search_term="a", required_only=True),
        ]
        for filters in combos:
            result = filter_items(self.items, filters)
            positions = [self.items.index(i) for i in result]
            self.assertEqual(positions, sorted(positions))

    def test_empty_filters_keep_everything(self):
        self.assertEqual(filter_items(self.items, FilterState()), self.items)


class SortTests(unittest.TestCase):
    def test_subtotal_sort_uses_computed_value(self):
        items = [make(1, unit_cost=100.0, quantity=2.0), make(2, unit_cost=50.0, quantity=1.0)]
        ordered = sort_items(items, SortState(field="subTotal", ascending=True))
        self.assertEqual([i.id.value for i in ordered], [2, 1])

    def test_subtotal_sort_ignores_stored_sub_total(self):
        items = [
            make(1, unit_cost=100.0, quantity=2.0, sub_total=1.0),
            make(2, unit_cost=50.0, quantity=1.0, sub_total=999.0),
        ]
        ordered = sort_items(items, SortState(field="subTotal"))
        self.assertEqual([i.id.value for i in ordered], [2, 1])

    def test_sort_is_stable_both_directions(self):
        items = [
            make(1, category="B"),
            make(2, category="a"),
            make(3, category="b"),
            make(4, category="A"),
        ]
        asc = sort_items(items, SortState(field="category", ascending=True))
        self.assertEqual([i.id.value for i in asc], [2, 4, 1, 3])
        desc = sort_items(items, SortState(field="category", ascending=False))
        self.assertEqual([i.id.value for i in desc], [1, 3, 2, 4])

    def test_numbers_compare_numerically(self):
        items = [make(1, unit_cost=100.0), make(2, unit_cost=9.0), make(3, unit_cost=20.0)]
        ordered = sort_items(items, SortState(field="unitCost"))
        self.assertEqual([i.id.value for i in ordered], [2, 3, 1])

    def test_missing_values_sort_as_empty_string(self):
        items = [make(1, unit_cost=5.0), make(2, unit_cost=None)]
        ordered = sort_items(items, SortState(field="unitCost"))
        self.assertEqual([i.id.value for i in ordered], [2, 1])

    def test_compare_values_mixed_types_fall_back_to_strings(self):
        self.assertEqual(compare_values(None, None), 0)
        self.assertEqual(compare_values(10, 9), 1)
        self.assertEqual(compare_values("10", 9), -1)
        self.assertEqual(compare_values("Apple", "apple"), 0)

    def test_activate_same_field_toggles(self):
        state = SortState()
        once = state.activate("item")
        twice = once.activate("item")
        self.assertEqual(once, SortState(field="item", ascending=True))
        self.assertEqual(twice, SortState(field="item", ascending=False))

    def test_activate_other_field_resets_ascending(self):
        state = SortState(field="item", ascending=False)
        self.assertEqual(state.activate("category"), SortState(field="category", ascending=True))

    def test_activate_twice_reverses_distinct_keys(self):
        pipeline = BudgetPipeline()
        pipeline.load([make(1, item="b"), make(2, item="c"), make(3, item="a")])
        pipeline.activate_sort("item")
        once = [i.id.value for i in pipeline.compute_view().items]
        pipeline.activate_sort("item")
        twice = [i.id.value for i in pipeline.compute_view().items]
        self.assertEqual(once, [3, 1, 2])
        self.assertEqual(twice, list(reversed(once)))

    def test_unknown_sort_field_rejected(self):
        with self.assertRaises(ValueError):
            SortState().activate("mdContent")


class ViewTests(unittest.TestCase):
    def setUp(self):
        self.pipeline = BudgetPipeline()
        self.pipeline.load([
            make(1, category="Venue", item="Hall", unit_cost=1000.0, quantity=1.0),
            make(2, category="Food", item="Cake", unit_cost=100.0, quantity=2.0),
            make(3, category="Food", item="Tea", unit_cost=50.0, quantity=None),
        ])

    def test_scenario_search_hall(self):
        self.pipeline.set_filter(search_term="hall")
        self.assertEqual(len(self.pipeline.compute_view().rows), 1)
        self.pipeline.set_filter(search_term="zzz")
        self.assertEqual(len(self.pipeline.compute_view().rows), 0)

    def test_total_cost_covers_only_visible_items(self):
        self.pipeline.set_filter(category="Food")
        view = self.pipeline.compute_view()
        self.assertEqual(view.summary.total_cost, sum(computed_subtotal(i) for i in view.items))
        self.assertEqual(view.summary.total_cost, 250.0)
        self.assertEqual(view.summary.visible_count, 2)
        self.assertEqual(view.summary.total_count, 3)

    def test_null_quantity_counts_as_one_but_zero_stays_zero(self):
        self.assertEqual(computed_subtotal(make(9, unit_cost=12.5, quantity=None)), 12.5)
        self.assertEqual(computed_subtotal(make(9, unit_cost=12.5, quantity=0.0)), 0.0)
        self.assertEqual(computed_subtotal(make(9, unit_cost=None, quantity=3.0)), 0.0)

    def test_sentinel_excluded_from_counts_but_included_in_cost(self):
        sentinel = self.pipeline.insert_sentinel()
        self.pipeline.apply_field(sentinel.id, "unitCost", 10.0)
        view = self.pipeline.compute_view()
        self.assertEqual(view.summary.total_count, 3)
        self.assertEqual(view.summary.visible_count, 3)
        self.assertEqual(len(view.rows), 4)
        self.assertEqual(view.summary.total_cost, 1000.0 + 200.0 + 50.0 + 10.0)

    def test_sentinel_is_first_in_canonical_and_last_by_id(self):
        self.pipeline.insert_sentinel()
        self.assertTrue(self.pipeline.canonical[0].is_pending)
        keys = [row.key for row in self.pipeline.compute_view().rows]
        self.assertEqual(keys, ["1", "2", "3", "new"])
        self.assertEqual(self.pipeline.compute_view().rows[-1].id_label, "NEW")

    def test_only_one_sentinel(self):
        self.pipeline.insert_sentinel()
        with self.assertRaises(ValueError):
            self.pipeline.insert_sentinel()

    def test_view_is_rebuilt_not_shared(self):
        first = self.pipeline.compute_view()
        self.pipeline.remove(Persisted(1))
        second = self.pipeline.compute_view()
        self.assertEqual(len(first.rows), 3)
        self.assertEqual(len(second.rows), 2)

    def test_replace_keeps_position(self):
        sentinel = self.pipeline.insert_sentinel()
        created = make(7, category="Flowers", item="Bouquet")
        self.assertTrue(self.pipeline.replace(sentinel.id, created))
        self.assertEqual(self.pipeline.canonical[0], created)
        self.assertFalse(self.pipeline.has_pending())
        self.assertFalse(self.pipeline.replace(Pending(), created))

    def test_categories_are_sorted_unique_and_non_blank(self):
        self.pipeline.insert_sentinel()
        self.pipeline.apply_field(Persisted(3), "category", "  ")
        self.assertEqual(self.pipeline.categories(), ["Food", "Venue"])

    def test_metrics_status_thresholds(self):
        metrics = self.pipeline.metrics(budget=10000.0)
        self.assertEqual(metrics.total_cost, 1250.0)
        self.assertEqual(metrics.remaining, 8750.0)
        self.assertEqual(metrics.status, "good")
        self.assertEqual(self.pipeline.metrics(budget=1300.0).status, "warning")
        over = self.pipeline.metrics(budget=1000.0)
        self.assertEqual(over.status, "danger")
        self.assertLess(over.remaining, 0)
        self.assertEqual(over.progress, 100.0)
        self.assertEqual(self.pipeline.metrics(budget=0).percentage, 0.0)

    def test_metrics_ignore_filters_and_sentinel(self):
        self.pipeline.set_filter(search_term="zzz")
        sentinel = self.pipeline.insert_sentinel()
        self.pipeline.apply_field(sentinel.id, "unitCost", 500.0)
        self.assertEqual(self.pipeline.metrics(budget=40000.0).total_cost, 1250.0)


if __name__ == "__main__":
    unittest.main()
