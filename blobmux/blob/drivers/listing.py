"""
Listing helper for drivers that keep their own key space

Implements prefix filtering, delimiter compression and token-based pagination
over a lexicographically sorted snapshot of keys.
"""

from typing import Callable, Iterable

from ..types import DEFAULT_PAGE_SIZE, ListObject, ListOptions, ListPage


class InvalidPageTokenError(ValueError):
    """Raised when a continuation token cannot be decoded"""

    pass


def decodePageToken(pageToken: bytes) -> str:
    """
    Decode a continuation token into the last key of the previous page.

    Raises:
        InvalidPageTokenError: If the token is not valid UTF-8
    """
    if not pageToken:
        return ""
    try:
        return pageToken.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidPageTokenError(f"Malformed page token: {pageToken!r}") from e


def paginateKeys(sortedKeys: Iterable[str], opts: ListOptions, makeObject: Callable[[str], ListObject]) -> ListPage:
    """
    Build one listing page from a sorted key snapshot.

    Keys are filtered by prefix first. When a delimiter is set, every key that
    contains the delimiter after the prefix is collapsed into a directory
    marker ``prefix + segment + delimiter``; only the first key of such a run
    produces the marker, the rest are skipped without counting against the
    page size. Entries whose key is not strictly greater than the page token
    are skipped.

    Args:
        sortedKeys: All keys of the bucket, in lexicographic order
        opts: Listing options
        makeObject: Builds the ListObject summary of a real blob key

    Returns:
        The page; ``nextPageToken`` is the last returned key when more entries remain

    Raises:
        InvalidPageTokenError: If the page token is malformed
    """
    pageToken = decodePageToken(opts.pageToken)
    pageSize = opts.pageSize or DEFAULT_PAGE_SIZE

    result = ListPage()
    lastPrefix = ""
    for key in sortedKeys:
        if not key.startswith(opts.prefix):
            continue

        obj: ListObject | None = None
        if opts.delimiter:
            keyWithoutPrefix = key[len(opts.prefix) :]
            idx = keyWithoutPrefix.find(opts.delimiter)
            if idx != -1:
                dirPrefix = opts.prefix + keyWithoutPrefix[: idx + len(opts.delimiter)]
                if dirPrefix == lastPrefix:
                    continue
                obj = ListObject(key=dirPrefix, isDir=True)
                lastPrefix = dirPrefix

        if pageToken and (obj.key if obj is not None else key) <= pageToken:
            continue

        if len(result.objects) == pageSize:
            result.nextPageToken = result.objects[-1].key.encode("utf-8")
            return result

        result.objects.append(obj if obj is not None else makeObject(key))

    return result
