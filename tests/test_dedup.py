import unittest

from digest.dedup import deduplicate
from digest.models import ValidCandidate


def candidate(title, link, source="https://src.com/", description=None):
    return ValidCandidate(source_url=source, link=link, title=title, description=description)


class TestDeduplicate(unittest.TestCase):
    def setUp(self):
        self.candidates = [
            candidate("A", "https://a.com/1", description="first"),
            candidate("B", "https://b.com/1"),
            candidate("A", "https://a.com/1", source="search:homecare", description="second"),
            candidate("C", "https://c.com/1"),
            candidate("B", "https://b.com/1"),
            candidate("B", "https://b.com/1"),
            candidate("A", "https://a.com/other"),
        ]

    def test_collapses_exact_duplicates_in_first_seen_order(self):
        unique = deduplicate(self.candidates)
        self.assertEqual([(c.title, c.link) for c in unique], [
            ("A", "https://a.com/1"),
            ("B", "https://b.com/1"),
            ("C", "https://c.com/1"),
            ("A", "https://a.com/other"),
        ])
        self.assertEqual([c.occurrence_count for c in unique], [2, 3, 1, 1])

    def test_keeps_first_seen_values(self):
        first = deduplicate(self.candidates)[0]
        self.assertEqual(first.description, "first")
        self.assertEqual(first.source_url, "https://src.com/")

    def test_counts_add_up_to_input_size(self):
        unique = deduplicate(self.candidates)
        self.assertLessEqual(len(unique), len(self.candidates))
        self.assertEqual(sum(c.occurrence_count for c in unique), len(self.candidates))

    def test_sorted_view(self):
        unique = deduplicate(self.candidates, sort_by_count=True)
        self.assertEqual([c.title for c in unique], ["B", "A", "C", "A"])

    def test_custom_key_fields(self):
        unique = deduplicate(self.candidates, fields=["title"])
        self.assertEqual([(c.title, c.occurrence_count) for c in unique], [("A", 3), ("B", 3), ("C", 1)])

    def test_does_not_mutate_input(self):
        before = list(self.candidates)
        deduplicate(self.candidates)
        self.assertEqual(self.candidates, before)


if __name__ == "__main__":
    unittest.main()
