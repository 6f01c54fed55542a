"""
Tag statistics: how many images share each exact combination of tags.
"""

from collections import Counter
from typing import Iterable, List, Sequence, Tuple
from .models import Item, Selection, StatGroup, TagState
from .query import selection_query


SIGNATURE_DELIMITER = " & "


def tag_combination(tags: Iterable[str]) -> Tuple[str, ...]:
    """Get the sorted, de-duplicated combination of a tag list."""
    return tuple(sorted(set(tags)))


def combination_selection(combination: Sequence[str], universe: Sequence[str]) -> Selection:
    """Get the selection matching exactly one tag combination.

    Every tag of the combination is included, every other tag of the
    universe is excluded.
    """
    selection: Selection = {tag: TagState.EXCLUDE for tag in universe}
    for tag in combination:
        selection[tag] = TagState.INCLUDE
    return selection


def aggregate(items: Iterable[Item], universe: Sequence[str]) -> List[StatGroup]:
    """Group items by their exact tag combination, ordered by signature."""
    counts = Counter(tag_combination(item.tags) for item in items)

    groups = []
    for combination, count in counts.items():
        groups.append(StatGroup(
            signature=SIGNATURE_DELIMITER.join(combination),
            tags=combination,
            count=count,
            query=selection_query(combination_selection(combination, universe)),
        ))

    # Distinct combinations may render the same signature when a tag contains the delimiter
    groups.sort(key=lambda group: (group.signature, group.tags))
    return groups
