"""Append-only audit trail of what each pass changed on this machine."""

import json
import logging
from pathlib import Path
from typing import Any

from fleetsync.core.paths import ensure_state_dir, get_state_dir
from fleetsync.models.action import SyncReport
from fleetsync.models.history import HistoryEntry, create_history_entry

logger = logging.getLogger(__name__)


class StateManager:
    """Reads and appends ``history.jsonl`` in the state directory.

    One HistoryEntry per line; a corrupt line only loses that entry.
    """

    HISTORY_FILENAME = "history.jsonl"

    def __init__(self, state_dir: Path | None = None) -> None:
        self._state_dir = state_dir if state_dir is not None else get_state_dir()

    @property
    def history_path(self) -> Path:
        """Location of the JSONL file."""
        return self._state_dir / self.HISTORY_FILENAME

    def record_action(self, entry: HistoryEntry) -> None:
        """Append an entry to the history file.

        Raises:
            RuntimeError: If the state directory cannot be created.
            OSError: If the file cannot be written.
        """
        if self._state_dir == get_state_dir():
            ensure_state_dir()
        else:
            self._state_dir.mkdir(parents=True, exist_ok=True)

        with self.history_path.open(mode="a", encoding="utf-8") as f:
            f.write(entry.to_json_line() + "\n")
            f.flush()

    def record_report(
        self, command: str, report: SyncReport, metadata: dict[str, Any] | None = None
    ) -> HistoryEntry | None:
        """Record the mutations of a pass; write failures only warn.

        Returns:
            The recorded entry, or None if nothing was recorded.
        """
        entry = create_history_entry(command, report.results, metadata)
        if entry is None:
            return None
        try:
            self.record_action(entry)
        except (OSError, RuntimeError) as e:
            logger.warning("Could not record history: %s", e)
            return None
        return entry

    def get_history(self, limit: int | None = None) -> list[HistoryEntry]:
        """Entries newest first, at most ``limit`` of them; corrupt lines are skipped."""
        if not self.history_path.exists():
            return []

        entries: list[HistoryEntry] = []
        with self.history_path.open(encoding="utf-8") as f:
            for number, raw in enumerate(f, start=1):
                if not raw.strip():
                    continue
                try:
                    entries.append(HistoryEntry.from_json_line(raw))
                except (json.JSONDecodeError, KeyError, ValueError) as e:
                    logger.warning("Skipping corrupt history line %d: %s", number, e)

        entries.reverse()
        return entries if limit is None else entries[:limit]
