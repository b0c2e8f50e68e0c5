"""Tests for data model classes."""

import unittest

from harvester.models import Chunk, MessageKind, UnitMessage, WorkItem


class TestWorkItem(unittest.TestCase):
    """Verify WorkItem creation and immutability."""

    def test_create_with_defaults(self):
        item = WorkItem(item_id="acme")
        self.assertEqual(item.payload, {})
        self.assertEqual(item.name, "acme")

    def test_name_from_payload(self):
        item = WorkItem(item_id="acme", payload={"Organization Name": "Acme Inc"})
        self.assertEqual(item.name, "Acme Inc")

    def test_is_immutable(self):
        item = WorkItem(item_id="acme")
        with self.assertRaises(AttributeError):
            item.item_id = "other"


class TestChunkAndMessages(unittest.TestCase):
    def test_chunk_length(self):
        chunk = Chunk(index=0, items=(WorkItem("a"), WorkItem("b")))
        self.assertEqual(len(chunk), 2)

    def test_message_kind_values(self):
        """Message kinds match the wire names data/error/done."""
        self.assertEqual([k.value for k in MessageKind], ["data", "error", "done"])
        message = UnitMessage(kind=MessageKind.DONE, unit_id=1)
        self.assertEqual(message.records, ())
        self.assertIsNone(message.item_id)


if __name__ == "__main__":
    unittest.main()
