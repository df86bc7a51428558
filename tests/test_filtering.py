import unittest

from ksc_collector.filtering import filter_by_id
from ksc_collector.property_bag import PropertyBag

RECORDS = [
    PropertyBag(id="X", name="first"),
    PropertyBag(id="Y", name="second"),
    PropertyBag(name="no-id"),
    PropertyBag(id=7, name="numeric"),
]


class FilterByIdTests(unittest.TestCase):

    def test_empty_id_returns_everything(self):
        self.assertEqual(filter_by_id(RECORDS, "id", ""), RECORDS)
        self.assertEqual(filter_by_id(RECORDS, "id", None), RECORDS)

    def test_exact_match(self):
        result = filter_by_id(RECORDS, "id", "X")
        self.assertEqual([r["name"] for r in result], ["first"])

    def test_records_without_identity_are_excluded(self):
        result = filter_by_id(RECORDS, "id", "no-id")
        self.assertEqual(result, [])

    def test_number_and_string_compare_equal(self):
        self.assertEqual([r["name"] for r in filter_by_id(RECORDS, "id", "7")], ["numeric"])
        self.assertEqual([r["name"] for r in filter_by_id(RECORDS, "id", 7)], ["numeric"])

    def test_no_identity_field_with_id_yields_nothing(self):
        self.assertEqual(filter_by_id([PropertyBag(a=1)], None, "X"), [])

    def test_does_not_mutate_input(self):
        records = list(RECORDS)
        filter_by_id(records, "id", "X")
        self.assertEqual(records, RECORDS)


if __name__ == "__main__":
    unittest.main()
