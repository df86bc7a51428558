import unittest
from datetime import datetime, timezone

from ksc_collector.property_bag import (
    ABSENT,
    BOOL,
    FLOAT,
    INT,
    LIST,
    STRING,
    STRUCT,
    TIMESTAMP,
    PropertyBag,
    value_kind,
)


class ValueKindTests(unittest.TestCase):

    def test_scalar_kinds(self):
        self.assertEqual(value_kind(None), ABSENT)
        self.assertEqual(value_kind(True), BOOL)
        self.assertEqual(value_kind(3), INT)
        self.assertEqual(value_kind(1.5), FLOAT)
        self.assertEqual(value_kind("x"), STRING)
        self.assertEqual(value_kind(datetime(2025, 1, 1, tzinfo=timezone.utc)), TIMESTAMP)

    def test_container_kinds(self):
        self.assertEqual(value_kind(PropertyBag(a=1)), STRUCT)
        self.assertEqual(value_kind({"a": 1}), STRUCT)
        self.assertEqual(value_kind([1, 2]), LIST)


class PropertyBagTests(unittest.TestCase):

    def test_preserves_insertion_order(self):
        bag = PropertyBag({"b": 1, "a": 2, "c": 3})
        self.assertEqual(list(bag), ["b", "a", "c"])

    def test_wraps_nested_mappings(self):
        bag = PropertyBag({"outer": {"inner": 1}, "items": [{"x": 1}]})
        self.assertIsInstance(bag["outer"], PropertyBag)
        self.assertIsInstance(bag["items"][0], PropertyBag)

    def test_augment_returns_new_bag(self):
        bag = PropertyBag(a=1)
        augmented = bag.augment(b=2)
        self.assertEqual(list(augmented.items()), [("a", 1), ("b", 2)])
        self.assertNotIn("b", bag)

    def test_augment_refuses_to_overwrite(self):
        with self.assertRaises(ValueError):
            PropertyBag(a=1).augment(a=2)

    def test_project_keeps_requested_order_and_skips_missing(self):
        bag = PropertyBag({"a": 1, "b": 2, "c": 3})
        self.assertEqual(list(bag.project(["c", "zz", "a"]).items()), [("c", 3), ("a", 1)])

    def test_to_dict_unwraps_nested(self):
        bag = PropertyBag({"outer": {"inner": [1, {"x": 2}]}})
        self.assertEqual(bag.to_dict(), {"outer": {"inner": [1, {"x": 2}]}})
        self.assertIs(type(bag.to_dict()["outer"]), dict)

    def test_equality_with_dict(self):
        self.assertEqual(PropertyBag(a=1), {"a": 1})


if __name__ == "__main__":
    unittest.main()
