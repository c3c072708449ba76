"""
Translate an admin list query into MongoDB filter, sort and paging arguments.

Nothing in here touches the database; the service runs the resulting
``find`` and ``count_documents`` calls with the same filter.
"""
from pymongo import ASCENDING, DESCENDING
from typing import Any, Dict, List, Tuple
import re

from app.models.contact import ContactListQuery, DEFAULT_SORT, SORTABLE_FIELDS

SEARCH_FIELDS = ("name", "school", "email", "message")


def build_contact_filter(query: ContactListQuery) -> Dict[str, Any]:
    filter_query: Dict[str, Any] = {}

    if query.status:
        filter_query["status"] = query.status
    if query.priority:
        filter_query["priority"] = query.priority
    if query.is_read is not None:
        filter_query["is_read"] = query.is_read
    if query.is_archived is not None:
        filter_query["is_archived"] = query.is_archived

    # Plain substring match on any of the text fields
    if query.search:
        pattern = re.escape(query.search)
        filter_query["$or"] = [
            {field: {"$regex": pattern, "$options": "i"}} for field in SEARCH_FIELDS
        ]

    return filter_query


def build_sort(sort_by: str = DEFAULT_SORT) -> List[Tuple[str, int]]:
    direction = DESCENDING if sort_by.startswith("-") else ASCENDING
    field = SORTABLE_FIELDS[sort_by.lstrip("-")]
    # _id breaks ties so pages never overlap
    return [(field, direction), ("_id", direction)]


def page_window(page: int, limit: int) -> Tuple[int, int]:
    """Return ``(skip, limit)`` for a 1-based page."""
    return (page - 1) * limit, limit
