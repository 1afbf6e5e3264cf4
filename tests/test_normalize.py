from __future__ import annotations

import unittest
from datetime import datetime, timezone

from photo_feed.normalize import asset_ref_from_value, feed_row_from_record, parse_timestamp
from photo_feed.post import AssetRef

_NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


class TestNormalize(unittest.TestCase):
    def test_full_row(self) -> None:
        row = feed_row_from_record(
            {
                "objectId": "abc",
                "caption": " hi \n",
                "username": "ana ",
                "createdAt": "2024-09-22T10:00:00.123Z",
                "photo": {"__type": "File", "name": "p.jpg", "url": "https://f/p.jpg"},
            }
        )
        assert row is not None
        self.assertEqual(row.id, "abc")
        self.assertEqual(row.caption, " hi \n")
        self.assertEqual(row.author, "ana ")
        self.assertEqual(row.created_at, datetime(2024, 9, 22, 10, 0, 0, 123000, tzinfo=timezone.utc))
        self.assertEqual(row.photo, AssetRef(name="p.jpg", url="https://f/p.jpg"))

    def test_defaults_for_missing_fields(self) -> None:
        row = feed_row_from_record({"objectId": "abc", "caption": 12}, now=lambda: _NOW)
        assert row is not None
        self.assertEqual(row.caption, "")
        self.assertEqual(row.author, "")
        self.assertEqual(row.created_at, _NOW)
        self.assertIsNone(row.photo)

    def test_row_without_id_is_unusable(self) -> None:
        self.assertIsNone(feed_row_from_record({"caption": "x"}))
        self.assertIsNone(feed_row_from_record({"objectId": "   "}))

    def test_parse_timestamp_variants(self) -> None:
        expected = datetime(2024, 9, 22, 10, 0, tzinfo=timezone.utc)
        self.assertEqual(parse_timestamp("2024-09-22T10:00:00Z"), expected)
        self.assertEqual(parse_timestamp({"__type": "Date", "iso": "2024-09-22T10:00:00Z"}), expected)
        self.assertEqual(parse_timestamp(datetime(2024, 9, 22, 10, 0)), expected)
        self.assertEqual(parse_timestamp("2024-09-22T12:00:00+02:00"), expected)
        self.assertIsNone(parse_timestamp("yesterday"))
        self.assertIsNone(parse_timestamp({"__type": "Pointer"}))
        self.assertIsNone(parse_timestamp(None))

    def test_asset_ref_rejects_non_files(self) -> None:
        self.assertIsNone(asset_ref_from_value({"__type": "Pointer", "objectId": "x"}))
        self.assertIsNone(asset_ref_from_value({"__type": "File"}))
        self.assertIsNone(asset_ref_from_value("https://f/p.jpg"))
        self.assertEqual(asset_ref_from_value({"url": "https://f/p.jpg"}), AssetRef(name="https://f/p.jpg", url="https://f/p.jpg"))


if __name__ == "__main__":
    unittest.main()
