from __future__ import annotations

import json
import os
from pathlib import Path

from loguru import logger

from agent_teams_monitor.history.summary import SessionRecord
from agent_teams_monitor.json_files import write_retry

SESSIONS_FILE_NAME = "sessions.jsonl"


class SessionHistory:
    """Append-only JSON-lines log of archived session summaries."""

    def __init__(self, history_dir: str | Path):
        self._history_dir = Path(history_dir)

    @property
    def history_dir(self) -> Path:
        return self._history_dir

    @property
    def path(self) -> Path:
        return self._history_dir / SESSIONS_FILE_NAME

    @write_retry
    def append(self, record: SessionRecord) -> None:
        self._history_dir.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record.to_dict(), ensure_ascii=True) + "\n")

    def list_records(self, *, team_name: str | None = None, limit: int | None = None) -> list[SessionRecord]:
        """Return records newest first. Unreadable lines are skipped."""
        if not self.path.is_file():
            return []
        records: list[SessionRecord] = []
        with open(self.path, encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    record = SessionRecord.from_dict(json.loads(line))
                except (ValueError, TypeError) as ex:
                    logger.debug(f"Skipping malformed history line {line_no}: {ex}")
                    continue
                if team_name is None or record.team_name == team_name:
                    records.append(record)
        records.reverse()
        if limit is not None:
            records = records[: max(0, limit)]
        return records

    @write_retry
    def rewrite(self, records: list[SessionRecord]) -> None:
        """Replace the log with ``records`` (oldest first), atomically."""
        self._history_dir.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            for record in records:
                f.write(json.dumps(record.to_dict(), ensure_ascii=True) + "\n")
        os.replace(tmp_path, self.path)
