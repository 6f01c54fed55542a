"""
Tag queries: filtering images by an include/exclude tag selection.
"""

from typing import Iterable, List, Mapping, Tuple
from urllib.parse import urlencode
from .models import Item, Selection, TagState


QUERY_PATH = "/query"

# Query parameter values meaning "don't care"
ANY_VALUES = ("", "any")


def selection_signature(selection: Selection) -> Tuple[List[str], Tuple[bool, ...]]:
    """Get the sorted mentioned tags and the expected membership of each."""
    tags = sorted(selection)
    return tags, tuple(selection[tag] == TagState.INCLUDE for tag in tags)


def item_signature(item: Item, tags: List[str]) -> Tuple[bool, ...]:
    checked = set(item.tags)
    return tuple(tag in checked for tag in tags)


def filter_items(items: Iterable[Item], selection: Selection) -> List[Item]:
    """Get the items whose tags match every mentioned tag's state exactly.

    Tags absent from the selection are unconstrained. The result keeps the
    order of ``items``.
    """
    tags, expected = selection_signature(selection)
    return [item for item in items if item_signature(item, tags) == expected]


def parse_selection(params: Mapping[str, str]) -> Selection:
    """Build a selection from query parameters such as ``cat=in&dog=ex``.

    Raises:
        ValueError: on a value other than ``in``, ``ex``, ``any`` or empty
    """
    selection: Selection = {}
    for tag, value in params.items():
        if value in ANY_VALUES:
            continue
        try:
            selection[tag] = TagState(value)
        except ValueError:
            raise ValueError(f"Invalid state '{value}' for tag '{tag}' (expected 'in', 'ex' or 'any')")
    return selection


def selection_query(selection: Selection) -> str:
    """Render a selection as a ``/query`` URL, tags in sorted order."""
    params = [(tag, selection[tag].value) for tag in sorted(selection)]
    return f"{QUERY_PATH}?{urlencode(params)}" if params else QUERY_PATH
