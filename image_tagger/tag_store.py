"""
Tag stores: persistence of the checked tags of each image.

Three layouts are supported behind the same ``TagStore`` interface:

* one ``.txt`` file per image, one tag per line
* one ``.json`` annotation document per image, whose ``"flags"`` mapping
  holds a boolean per label
* one row per image in a SQLite table ``(key, data)``, ``data`` being the
  comma-joined tag list

The text and JSON layouts may be mixed inside the same tag directory.
"""

import json
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Sequence, Union
from .models import Item, TagRecord
from .logging import get_logger


SQLITE_SUFFIXES = (".db", ".sqlite", ".sqlite3")


class TagStoreError(Exception):
    """Raised when a tag record cannot be read or written."""
    pass


class TagStore(ABC):
    """Read/update contract shared by every tag layout."""

    kind: str = "abstract"

    @abstractmethod
    def load_one(self, identity: str) -> TagRecord:
        """Load the tag record of the image with the given base file name."""

    @abstractmethod
    def update(self, item: Item, tags: Sequence[str]) -> None:
        """Persist ``tags`` as the checked tags of ``item``.

        Raises:
            TagStoreError: if the record cannot be written
        """

    def close(self) -> None:
        pass


class TextTagStore(TagStore):
    """One text file per image, one tag per line."""

    kind = "text"
    suffix = ".txt"

    def __init__(self, tag_dir: Union[str, Path]):
        self.tag_dir = Path(tag_dir)
        self.logger = get_logger("tag_store")

    def locate(self, identity: str) -> Path:
        return self.tag_dir / Path(identity).with_suffix(self.suffix).name

    def read(self, path: Path) -> List[str]:
        with open(path, "r", encoding="utf-8") as f:
            return [line.strip() for line in f if line.strip()]

    def load_one(self, identity: str) -> TagRecord:
        path = self.locate(identity)
        if not path.is_file():
            return TagRecord(location=str(path), tags=[], exists=False)
        try:
            tags = self.read(path)
        except (OSError, UnicodeDecodeError) as e:
            # Kept as an existing record so the next update overwrites it
            self.logger.warning(f"⚠️  Cannot read tag file {path}: {e}, treating it as untagged")
            return TagRecord(location=str(path), tags=[], exists=True)
        return TagRecord(location=str(path), tags=tags, exists=True)

    def update(self, item: Item, tags: Sequence[str]) -> None:
        path = Path(item.tag_path)
        try:
            with open(path, "w", encoding="utf-8") as f:
                f.write("\n".join(tags))
        except OSError as e:
            raise TagStoreError(f"Cannot write tag file {path}: {e}")
        self.logger.debug(f"💾 Wrote {len(tags)} tags to {path}")


class JsonTagStore(TagStore):
    """One annotation document per image, tags kept in its ``flags`` mapping."""

    kind = "json"
    suffix = ".json"

    def __init__(self, tag_dir: Union[str, Path]):
        self.tag_dir = Path(tag_dir)
        self.logger = get_logger("tag_store")

    def locate(self, identity: str) -> Path:
        return self.tag_dir / Path(identity).with_suffix(self.suffix).name

    def read_document(self, path: Path) -> Dict[str, Any]:
        """Load an annotation document, validating its ``flags`` mapping."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except OSError as e:
            raise TagStoreError(f"Cannot read annotation {path}: {e}")
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise TagStoreError(f"Malformed annotation {path}: {e}")

        if not isinstance(document, dict):
            raise TagStoreError(f"Malformed annotation {path}: expected a JSON object")
        flags = document.get("flags", {})
        if flags is None:
            flags = {}
        if not isinstance(flags, dict) or not all(isinstance(v, bool) for v in flags.values()):
            raise TagStoreError(f"Malformed annotation {path}: 'flags' must map labels to booleans")
        document["flags"] = flags
        return document

    def load_one(self, identity: str) -> TagRecord:
        path = self.locate(identity)
        if not path.is_file():
            return TagRecord(location=str(path), tags=[], exists=False)
        flags = self.read_document(path)["flags"]
        return TagRecord(
            location=str(path),
            tags=[label for label, checked in flags.items() if checked],
            exists=True,
        )

    def update(self, item: Item, tags: Sequence[str]) -> None:
        path = Path(item.tag_path)
        if not path.is_file():
            raise TagStoreError(f"Annotation {path} does not exist")
        document = self.read_document(path)

        checked = set(tags)
        flags = document["flags"]
        for label in flags:
            flags[label] = label in checked
        for tag in tags:
            # Labels the document does not know yet are added so they read back
            flags.setdefault(tag, True)

        try:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(document, f, ensure_ascii=False, indent=2)
        except OSError as e:
            raise TagStoreError(f"Cannot write annotation {path}: {e}")
        self.logger.debug(f"💾 Wrote {len(checked)} flags to {path}")


class FileTagStore(TagStore):
    """Text files and JSON annotations side by side in one tag directory.

    Loading prefers ``<stem>.txt``, then ``<stem>.json``. When neither exists
    the item gets no tags and its record location is the ``.txt`` path, so
    the first update creates a text file.
    """

    kind = "file"

    def __init__(self, tag_dir: Union[str, Path]):
        self.tag_dir = Path(tag_dir)
        self.text = TextTagStore(self.tag_dir)
        self.json = JsonTagStore(self.tag_dir)
        self._by_suffix = {
            TextTagStore.suffix: self.text,
            JsonTagStore.suffix: self.json,
        }

    def load_one(self, identity: str) -> TagRecord:
        record = self.text.load_one(identity)
        if record.exists:
            return record
        json_record = self.json.load_one(identity)
        if json_record.exists:
            return json_record
        return record

    def update(self, item: Item, tags: Sequence[str]) -> None:
        suffix = Path(item.tag_path).suffix
        store = self._by_suffix.get(suffix)
        if store is None:
            raise TagStoreError(f"Unsupported tag file type '{suffix}' for {item.name}")
        store.update(item, tags)


class SqlTagStore(TagStore):
    """One row per image in a SQLite table of ``(key, data)``."""

    kind = "sql"

    def __init__(self, db_path: Union[str, Path], table: str = "tags"):
        if not table.isidentifier():
            raise TagStoreError(f"Invalid table name: {table!r}")
        self.db_path = Path(db_path)
        self.table = table
        self.logger = get_logger("tag_store")
        try:
            # Requests are served from worker threads; callers serialize access
            self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        except sqlite3.Error as e:
            raise TagStoreError(f"Cannot open tag database {self.db_path}: {e}")
        try:
            self.conn.execute(
                f"CREATE TABLE IF NOT EXISTS {self.table} ("
                "key TEXT PRIMARY KEY, data TEXT NOT NULL DEFAULT '')"
            )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.close()
            raise TagStoreError(f"Cannot open tag database {self.db_path}: {e}")
        self.logger.info(f"🗄️  Using tag database {self.db_path} (table '{self.table}')")

    @staticmethod
    def encode(tags: Sequence[str]) -> str:
        return ",".join(tags)

    @staticmethod
    def decode(data: str) -> List[str]:
        return [tag for tag in data.split(",") if tag] if data else []

    def load_one(self, identity: str) -> TagRecord:
        try:
            row = self.conn.execute(
                f"SELECT data FROM {self.table} WHERE key = ?", (identity,)
            ).fetchone()
        except sqlite3.Error as e:
            raise TagStoreError(f"Cannot read tags for {identity}: {e}")
        tags = self.decode(row[0]) if row else []
        # A missing row just means the image has not been tagged yet
        return TagRecord(location=identity, tags=tags, exists=True)

    def update(self, item: Item, tags: Sequence[str]) -> None:
        data = self.encode(tags)
        try:
            cursor = self.conn.execute(
                f"UPDATE {self.table} SET data = ? WHERE key = ?", (data, item.tag_path)
            )
            if cursor.rowcount == 0:
                self.conn.execute(
                    f"INSERT INTO {self.table} (key, data) VALUES (?, ?)", (item.tag_path, data)
                )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise TagStoreError(f"Cannot write tags for {item.name}: {e}")
        self.logger.debug(f"💾 Stored {len(tags)} tags for {item.tag_path}")

    def close(self) -> None:
        self.conn.close()


def create_tag_store(tag_dir: Union[str, Path], table: str = "tags") -> TagStore:
    """Create the tag store matching the configured tag location.

    A path with a SQLite suffix selects the database layout, anything else is
    treated as a directory of text/JSON tag files.
    """
    tag_dir = Path(tag_dir)
    if tag_dir.suffix.lower() in SQLITE_SUFFIXES:
        return SqlTagStore(tag_dir, table=table)
    if not tag_dir.is_dir():
        raise TagStoreError(f"Tag directory {tag_dir} does not exist")
    return FileTagStore(tag_dir)
