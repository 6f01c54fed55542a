"""
Shared tagger state: the image index and the tag store, guarded for
concurrent requests.
"""

import threading
from typing import List, Optional, Sequence
from .config import Settings
from .image_index import ImageIndex, build_index
from .models import Item, Selection, StatGroup
from .query import filter_items
from .stats import aggregate
from .tag_store import TagStore, TagStoreError, create_tag_store
from .logging import get_logger, MetricsLogger


class TagValidationError(ValueError):
    """Raised when an update carries tags the configuration does not allow."""
    pass


class TaggerState:
    """Owner of the image index and the tag store.

    ``items_lock`` guards the items and ``store_lock`` guards the store. When
    both are needed they are taken in that order. Reads hand out copies so
    callers never observe an item mid-update.
    """

    def __init__(self, index: ImageIndex, store: TagStore, tags: Sequence[str], multilabel: bool = True):
        self.index = index
        self.store = store
        self.tags = list(tags)
        self.multilabel = multilabel
        self.items_lock = threading.Lock()
        self.store_lock = threading.Lock()
        self.metrics = MetricsLogger()
        self.logger = get_logger("state")

    @classmethod
    def from_settings(cls, settings: Settings) -> "TaggerState":
        """Open the configured tag store and scan the image directory.

        Raises:
            TagStoreError: if the tag store cannot be opened or a record is malformed
            IndexBuildError: if the image directory cannot be listed
        """
        store = create_tag_store(settings.tag_dir, table=settings.tag_table)
        try:
            index = build_index(settings.img_dir, store, skip_missing=settings.skip_missing)
        except Exception:
            store.close()
            raise
        return cls(index, store, settings.tags, multilabel=settings.multilabel)

    def list_items(self) -> List[Item]:
        """Get a copy of every item, sorted by name."""
        with self.items_lock:
            return [item.model_copy(deep=True) for item in self.index]

    def find(self, name: str) -> Optional[Item]:
        with self.items_lock:
            item = self.index.find(name)
            return item.model_copy(deep=True) if item else None

    def query(self, selection: Selection) -> List[Item]:
        """Get copies of the items matching ``selection``."""
        with self.items_lock:
            matches = [item.model_copy(deep=True) for item in filter_items(self.index, selection)]
        self.metrics.log_query(len(selection), len(matches))
        return matches

    def stats(self) -> List[StatGroup]:
        """Get the tag combination groups of the current items."""
        with self.items_lock:
            groups = aggregate(self.index, self.tags)
        self.metrics.log_stats(len(groups))
        return groups

    def validate_tags(self, tags: Sequence[str]) -> None:
        unknown = [tag for tag in tags if tag not in self.tags]
        if unknown:
            raise TagValidationError(f"Unknown tags: {', '.join(unknown)}")
        if not self.multilabel and len(set(tags)) > 1:
            raise TagValidationError("Only one tag may be checked per image")

    def update(self, name: str, tags: Sequence[str]) -> bool:
        """Replace the checked tags of an image.

        Returns:
            True if the image was updated, False if no image has that name

        Raises:
            TagValidationError: if the tags are not allowed
            TagStoreError: if the tag store write failed; the item keeps its old tags
        """
        self.validate_tags(tags)
        tags = list(tags)

        with self.items_lock:
            item = self.index.find(name)
            if item is None:
                self.metrics.log_ignored_update(name)
                return False

            with self.store_lock:
                try:
                    self.store.update(item, tags)
                except TagStoreError as e:
                    self.metrics.log_update_failure(name, str(e))
                    raise

            item.tags = tags

        self.metrics.log_update(name, len(tags))
        return True

    def close(self) -> None:
        with self.store_lock:
            self.store.close()
