"""
Tests for the paginateKeys listing helper.

These tests exercise the pure listing algorithm without a driver: prefix
filtering, delimiter compression, page tokens and lazy object creation.
"""

import unittest

from ..types import ListObject, ListOptions
from .listing import InvalidPageTokenError, decodePageToken, paginateKeys


def makeObject(key: str) -> ListObject:
    return ListObject(key=key, size=len(key))


class TestDecodePageToken(unittest.TestCase):
    """Test suite for page token decoding."""

    def testEmptyToken(self):
        """Test that an empty token starts from the beginning."""
        self.assertEqual(decodePageToken(b""), "")

    def testUtf8Token(self):
        """Test that tokens decode to the last key of the previous page."""
        self.assertEqual(decodePageToken("ключ/1".encode("utf-8")), "ключ/1")

    def testMalformedToken(self):
        """Test that invalid UTF-8 is rejected."""
        with self.assertRaises(InvalidPageTokenError):
            decodePageToken(b"\xff")


class TestPaginateKeys(unittest.TestCase):
    """Test suite for paginateKeys."""

    def setUp(self):
        self.keys = ["a", "b/c", "b/d", "e", "f/g/h"]

    def testAllKeys(self):
        """Test a listing without options."""
        page = paginateKeys(self.keys, ListOptions(), makeObject)
        self.assertEqual([obj.key for obj in page.objects], self.keys)
        self.assertEqual(page.nextPageToken, b"")
        self.assertEqual(page.objects[1].size, 3)

    def testDelimiter(self):
        """Test that directories are emitted once and carry no attributes."""
        page = paginateKeys(self.keys, ListOptions(delimiter="/"), makeObject)
        self.assertEqual([obj.key for obj in page.objects], ["a", "b/", "e", "f/"])
        self.assertEqual([obj.isDir for obj in page.objects], [False, True, False, True])
        self.assertEqual(page.objects[1].size, 0)

    def testPrefixAndDelimiter(self):
        """Test compression relative to the prefix."""
        page = paginateKeys(self.keys, ListOptions(prefix="f/", delimiter="/"), makeObject)
        self.assertEqual([obj.key for obj in page.objects], ["f/g/"])

    def testPageTokenSkipsUpToAndIncludingKey(self):
        """Test that entries not greater than the token are skipped."""
        page = paginateKeys(self.keys, ListOptions(pageToken=b"b/c", pageSize=2), makeObject)
        self.assertEqual([obj.key for obj in page.objects], ["b/d", "e"])
        self.assertEqual(page.nextPageToken, b"e")

    def testTokenOnlyWhenMoreEntriesExist(self):
        """Test that a page ending exactly at the last entry has no token."""
        page = paginateKeys(["a", "b"], ListOptions(pageSize=2), makeObject)
        self.assertEqual(page.nextPageToken, b"")

        page = paginateKeys(["a", "b", "c"], ListOptions(pageSize=2), makeObject)
        self.assertEqual(page.nextPageToken, b"b")

    def testObjectsBuiltOnlyForReturnedKeys(self):
        """Test that makeObject is not called for filtered or skipped keys."""
        built = []

        def recordingMakeObject(key):
            built.append(key)
            return makeObject(key)

        paginateKeys(self.keys, ListOptions(prefix="b/", pageSize=1), recordingMakeObject)
        self.assertEqual(built, ["b/c"])


if __name__ == "__main__":
    unittest.main()
