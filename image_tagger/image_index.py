"""
Image index: the sorted collection of images and their checked tags.
"""

import os
from bisect import bisect_left
from pathlib import Path
from typing import Iterator, List, Optional, Union
from .models import Item
from .tag_store import TagStore
from .logging import get_logger


IMAGE_EXTENSIONS = (".jpg", ".png", ".jpeg")
IMAGE_URL_PREFIX = "/images"


class IndexBuildError(Exception):
    """Raised when the image directory cannot be scanned."""
    pass


def is_image_name(file_name: str) -> bool:
    """Check whether a file name carries one of the image extensions (case-sensitive)."""
    return any(file_name.endswith(ext) and len(file_name) > len(ext) for ext in IMAGE_EXTENSIONS)


class ImageIndex:
    """Items sorted by name, with binary lookup by name."""

    def __init__(self, items: List[Item]):
        self.items = sorted(items, key=lambda item: item.name)
        self._names = [item.name for item in self.items]

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[Item]:
        return iter(self.items)

    def find(self, name: str) -> Optional[Item]:
        """Find an item by image file name."""
        i = bisect_left(self._names, name)
        if i < len(self._names) and self._names[i] == name:
            return self.items[i]
        return None


def scan_image_names(image_dir: Union[str, Path]) -> List[str]:
    """List the image files directly inside ``image_dir``.

    Raises:
        IndexBuildError: if the directory cannot be listed
    """
    logger = get_logger("image_index")
    names = []
    try:
        with os.scandir(image_dir) as entries:
            for entry in entries:
                try:
                    if not entry.is_file():
                        continue
                except OSError as e:
                    logger.debug(f"Skipping unreadable entry {entry.name}: {e}")
                    continue
                if is_image_name(entry.name):
                    names.append(entry.name)
    except OSError as e:
        raise IndexBuildError(f"Cannot list image directory {image_dir}: {e}")
    return names


def build_index(image_dir: Union[str, Path], store: TagStore, skip_missing: bool = False) -> ImageIndex:
    """Scan ``image_dir`` and load the checked tags of every image.

    Args:
        image_dir: Directory holding the images
        store: Tag store the initial tags are read from
        skip_missing: Drop images that have no tag record yet

    Raises:
        IndexBuildError: if the image directory cannot be listed
        TagStoreError: if an existing JSON annotation is malformed
    """
    logger = get_logger("image_index")
    items = []
    skipped = 0
    owners = {}

    for name in scan_image_names(image_dir):
        record = store.load_one(name)
        if skip_missing and not record.exists:
            skipped += 1
            continue
        owner = owners.setdefault(record.location, name)
        if owner != name:
            logger.warning(f"⚠️  {name} and {owner} share the tag record {record.location}")
        items.append(Item(
            name=name,
            path=os.path.join(str(image_dir), name),
            url=f"{IMAGE_URL_PREFIX}/{name}",
            tag_path=record.location,
            tags=record.tags,
        ))

    index = ImageIndex(items)
    logger.info(f"🖼️  Indexed {len(index)} images from {image_dir}")
    if skipped:
        logger.info(f"⏭️  Skipped {skipped} images without tag records")
    return index
