from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

WRITE_ATTEMPTS = 3


def _log_write_retry(retry_state) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(f"Write failed ({exc}); retrying (attempt {retry_state.attempt_number}/{WRITE_ATTEMPTS})...")


# Callers run on the event loop thread; the back-off sleeps block it for at most ~20 ms per write.
write_retry = retry(
    retry=retry_if_exception_type(OSError),
    wait=wait_fixed(0.01),
    stop=stop_after_attempt(WRITE_ATTEMPTS),
    before_sleep=_log_write_retry,
    reraise=True,
)


@write_retry
def write_json(path: Path, payload: Any) -> None:
    """Write JSON atomically (temp file + rename) so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)
    os.replace(tmp_path, path)


def is_plain_name(name: str) -> bool:
    """True when ``name`` is a single path component that cannot climb out of its directory."""
    return bool(name) and name not in (".", "..") and Path(name).name == name
