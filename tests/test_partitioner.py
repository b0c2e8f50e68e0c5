"""Tests for the work partitioner."""

import math
import unittest

from harvester.errors import SetupError
from harvester.partitioner import partition
from tests.fakes import make_items


class TestPartition(unittest.TestCase):
    """Verify chunks partition the input exactly."""

    def test_partition_is_exact_for_all_sizes(self):
        """Concatenated chunks reproduce the input; count <= N; no empty chunk."""
        for total in range(0, 26):
            items = make_items(total)
            for workers in range(1, 9):
                chunks = partition(items, workers)
                flattened = [item for chunk in chunks for item in chunk.items]
                self.assertEqual(flattened, items)
                self.assertLessEqual(len(chunks), workers)
                self.assertTrue(all(len(chunk) > 0 for chunk in chunks))

    def test_chunk_size_is_ceiling(self):
        """All chunks but the last have size ceil(M/N)."""
        chunks = partition(make_items(10), 3)
        self.assertEqual([len(c) for c in chunks], [4, 4, 2])
        self.assertEqual(len(chunks[0]), math.ceil(10 / 3))

    def test_chunk_indices_are_ordinal(self):
        """Chunks are numbered in order starting at zero."""
        chunks = partition(make_items(7), 3)
        self.assertEqual([c.index for c in chunks], [0, 1, 2])

    def test_more_workers_than_items(self):
        """Five workers and two items give two single-item chunks."""
        chunks = partition(make_items(2), 5)
        self.assertEqual(len(chunks), 2)
        self.assertEqual([len(c) for c in chunks], [1, 1])

    def test_empty_input_gives_no_chunks(self):
        """No items means no chunks (and no units)."""
        self.assertEqual(partition([], 4), [])

    def test_invalid_worker_count_raises(self):
        """Worker counts below one are a setup fault."""
        for bad in (0, -1, 1.5, True):
            with self.assertRaises(SetupError):
                partition(make_items(3), bad)


if __name__ == "__main__":
    unittest.main()
