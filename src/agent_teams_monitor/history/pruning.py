from __future__ import annotations

import shutil
from datetime import UTC, datetime, timedelta
from pathlib import Path

from loguru import logger

from agent_teams_monitor.history.store import SessionHistory
from agent_teams_monitor.history.summary import SessionRecord
from agent_teams_monitor.models import parse_timestamp


def _remove_dir(path_text: str) -> None:
    if not path_text:
        return
    path = Path(path_text)
    if path.is_dir():
        shutil.rmtree(path, ignore_errors=True)


def prune_history(
    history: SessionHistory,
    *,
    retention_days: int,
    now: datetime | None = None,
) -> list[SessionRecord]:
    """Drop summary rows older than the retention window, with their directories."""
    now = now or datetime.now(UTC)
    cutoff = now - timedelta(days=max(1, retention_days))

    records = list(reversed(history.list_records()))
    kept: list[SessionRecord] = []
    pruned: list[SessionRecord] = []
    for record in records:
        ended = parse_timestamp(record.ended_at) or parse_timestamp(record.started_at)
        if ended is not None and ended.tzinfo is None:
            ended = ended.replace(tzinfo=UTC)
        if ended is not None and ended < cutoff:
            pruned.append(record)
        else:
            kept.append(record)

    if not pruned:
        return []

    history.rewrite(kept)
    for record in pruned:
        _remove_dir(record.recording_path)
        _remove_dir(record.archive_path)
    logger.info(f"Pruned {len(pruned)} archived session(s) older than {retention_days} days")
    return pruned
