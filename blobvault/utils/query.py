"""Parsing of react-admin style list queries (filter / sort / range)"""
import json
from typing import Any, Dict, Mapping, Optional, Tuple

from blobvault.errors import InvalidQueryError

ListQuery = Tuple[Optional[Dict[str, Any]], Optional[Tuple[str, str]], Optional[Tuple[int, int]]]


def _load_json(args: Mapping[str, str], key: str):
    raw = args.get(key)
    if raw is None or raw == '':
        return None
    try:
        return json.loads(raw)
    except ValueError:
        raise InvalidQueryError(f"Invalid JSON in '{key}' parameter")


def parse_get_list_query(args: Mapping[str, str]) -> ListQuery:
    """
    Parse the filter, sort and range query parameters.

    Args:
        args: Query string arguments, e.g. ?filter={"type":"image/png"}&sort=["size","DESC"]&range=[0,24]

    Returns:
        Tuple of (filter dict, (column, direction), (start, end)); absent parts are None

    Raises:
        InvalidQueryError: If a parameter is not well-formed
    """
    filter = _load_json(args, 'filter')
    if filter is not None and not isinstance(filter, dict):
        raise InvalidQueryError("'filter' must be a JSON object")

    sort = _load_json(args, 'sort')
    if sort is not None:
        if not (isinstance(sort, list) and len(sort) == 2 and all(isinstance(s, str) for s in sort)):
            raise InvalidQueryError("'sort' must be a [column, direction] pair")
        sort = (sort[0], sort[1])

    range = _load_json(args, 'range')
    if range is not None:
        if not (isinstance(range, list) and len(range) == 2 and all(isinstance(r, int) for r in range)):
            raise InvalidQueryError("'range' must be a [start, end] pair of integers")
        range = (range[0], range[1])

    return filter or None, sort, range


def content_range(resource: str, range: Optional[Tuple[int, int]], count: int, total: int) -> str:
    """
    Build a Content-Range header value, e.g. "blobs 0-24/319".

    Args:
        resource: Name of the listed resource
        range: Requested (start, end) or None for the full list
        count: Number of items actually returned
        total: Total number of matching items
    """
    start = range[0] if range else 0
    if count == 0:
        return f"{resource} */{total}"
    return f"{resource} {start}-{start + count - 1}/{total}"
