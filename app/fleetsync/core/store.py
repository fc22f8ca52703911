"""Local persistent stores: receipts, the puppy queue and the usage ledger.

All stores are JSON files in the state directory owned by the sync process.
Every mutation rewrites the whole file atomically by writing a temporary
file in the same directory and moving it into place with os.replace(), so
an interrupted pass never leaves a half-written store behind.
"""

import json
import logging
import os
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Generic, TypeVar

from pydantic import BaseModel, ValidationError

from fleetsync.core.errors import StoreCorruptError
from fleetsync.core.paths import get_puppy_queue_path, get_receipts_path, get_usage_path
from fleetsync.models.puppy import PuppyQueueEntry
from fleetsync.models.receipt import Receipt

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def write_atomic(path: Path, data: bytes) -> None:
    """Replace ``path`` with ``data`` in one step.

    Raises:
        OSError: If the file cannot be written. The temporary file is
            removed and the original file is left untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path: Path | None = None
    try:
        with NamedTemporaryFile(mode="wb", dir=path.parent, delete=False, suffix=".tmp") as f:
            tmp_path = Path(f.name)
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(str(tmp_path), str(path))
    except OSError:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise


class JsonStore(Generic[ModelT]):
    """A JSON object on disk mapping title -> pydantic model.

    ``load()`` returns a snapshot and ``save()`` replaces the file with a
    snapshot; in-memory mutation logic lives in the concrete stores.
    """

    def __init__(self, path: Path, model: type[ModelT]) -> None:
        self._path = path
        self._model = model

    @property
    def path(self) -> Path:
        """Location of the backing file."""
        return self._path

    def load(self) -> dict[str, ModelT]:
        """Read the store.

        Returns:
            Mapping of title to model. A missing file is an empty store.

        Raises:
            StoreCorruptError: If the file is unreadable or invalid.
        """
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            msg = f"Cannot read {self._path}: {e}"
            raise StoreCorruptError(msg) from e
        if not isinstance(raw, dict):
            msg = f"Cannot read {self._path}: expected a JSON object"
            raise StoreCorruptError(msg)
        try:
            return {key: self._model.model_validate(value) for key, value in raw.items()}
        except ValidationError as e:
            msg = f"Invalid entry in {self._path}: {e}"
            raise StoreCorruptError(msg) from e

    def save(self, snapshot: dict[str, ModelT]) -> None:
        """Replace the store with ``snapshot``.

        Raises:
            StoreCorruptError: If the file cannot be written.
        """
        data = {key: value.model_dump(mode="json") for key, value in sorted(snapshot.items())}
        payload = json.dumps(data, indent=2).encode("utf-8")
        try:
            write_atomic(self._path, payload)
        except OSError as e:
            msg = f"Cannot write {self._path}: {e}"
            raise StoreCorruptError(msg) from e


class ReceiptStore:
    """Ledger of installed titles, one Receipt per title."""

    def __init__(self, path: Path | None = None) -> None:
        self._store = JsonStore(path or get_receipts_path(), Receipt)
        self._receipts: dict[str, Receipt] | None = None

    def _cache(self) -> dict[str, Receipt]:
        if self._receipts is None:
            self._receipts = self._store.load()
        return self._receipts

    def all(self) -> list[Receipt]:
        """All receipts, ordered by title."""
        return [self._cache()[title] for title in sorted(self._cache())]

    def titles(self) -> list[str]:
        """Titles with a receipt, sorted."""
        return sorted(self._cache())

    def get(self, title: str) -> Receipt | None:
        """Receipt for ``title``, or None if not installed."""
        return self._cache().get(title)

    def put(self, receipt: Receipt) -> None:
        """Create or replace the receipt for its title and persist."""
        snapshot = dict(self._cache())
        snapshot[receipt.title] = receipt
        self._store.save(snapshot)
        self._receipts = snapshot
        logger.debug("Saved receipt for %s (package %d)", receipt.title, receipt.package_id)

    def delete(self, title: str) -> bool:
        """Remove the receipt for ``title``.

        Returns:
            True if a receipt was removed.
        """
        if title not in self._cache():
            return False
        snapshot = {k: v for k, v in self._cache().items() if k != title}
        self._store.save(snapshot)
        self._receipts = snapshot
        logger.debug("Deleted receipt for %s", title)
        return True


class PuppyQueue:
    """Persisted queue of reboot-required installs, one entry per title."""

    def __init__(self, path: Path | None = None) -> None:
        self._store = JsonStore(path or get_puppy_queue_path(), PuppyQueueEntry)
        self._entries: dict[str, PuppyQueueEntry] | None = None

    def _cache(self) -> dict[str, PuppyQueueEntry]:
        if self._entries is None:
            self._entries = self._store.load()
        return self._entries

    def all(self) -> list[PuppyQueueEntry]:
        """All queued entries, oldest first."""
        return sorted(self._cache().values(), key=lambda e: (e.queued_at, e.title))

    def get(self, title: str) -> PuppyQueueEntry | None:
        """Queued entry for ``title``, if any."""
        return self._cache().get(title)

    def queued_id(self, title: str) -> int | None:
        """Package id queued for ``title``, if any."""
        entry = self.get(title)
        return entry.package_id if entry is not None else None

    def has_equal_or_newer(self, title: str, package_id: int) -> bool:
        """Check if ``title`` is already queued at ``package_id`` or later."""
        queued = self.queued_id(title)
        return queued is not None and queued >= package_id

    def enqueue(self, entry: PuppyQueueEntry) -> None:
        """Queue an entry, replacing any existing entry for the same title."""
        snapshot = dict(self._cache())
        replaced = snapshot.get(entry.title)
        snapshot[entry.title] = entry
        self._store.save(snapshot)
        self._entries = snapshot
        if replaced is not None:
            logger.info("Replaced queued %s with %s", replaced.edition, entry.edition)
        else:
            logger.info("Queued %s for install at next reboot walk", entry.edition)

    def remove(self, title: str) -> bool:
        """Remove the entry for ``title``.

        Returns:
            True if an entry was removed.
        """
        if title not in self._cache():
            return False
        snapshot = {k: v for k, v in self._cache().items() if k != title}
        self._store.save(snapshot)
        self._entries = snapshot
        return True


class UsageRecord(BaseModel):
    """Most recent foreground observation of one trigger."""

    last_seen: datetime


class UsageLedger:
    """Last foreground observation per trigger (bundle id or path)."""

    def __init__(self, path: Path | None = None) -> None:
        self._store = JsonStore(path or get_usage_path(), UsageRecord)
        self._records: dict[str, UsageRecord] | None = None

    def _cache(self) -> dict[str, UsageRecord]:
        if self._records is None:
            self._records = self._store.load()
        return self._records

    def observe(self, trigger: str, at: datetime | None = None) -> None:
        """Record that ``trigger`` was in the foreground at ``at`` (default now)."""
        when = at or datetime.now(UTC)
        current = self._cache().get(trigger)
        if current is not None and current.last_seen >= when:
            return
        snapshot = dict(self._cache())
        snapshot[trigger] = UsageRecord(last_seen=when)
        self._store.save(snapshot)
        self._records = snapshot

    def last_seen(self, triggers: Iterable[str]) -> datetime | None:
        """Latest observation of any of ``triggers``, or None if never seen."""
        seen = [self._cache()[t].last_seen for t in triggers if t in self._cache()]
        return max(seen) if seen else None

    def all(self) -> dict[str, datetime]:
        """Every trigger with its last observation."""
        return {trigger: record.last_seen for trigger, record in self._cache().items()}
