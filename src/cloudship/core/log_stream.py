"""
Log streaming loop.

Backends only know how to fetch a batch of entries at or after a timestamp;
this module turns that into a tail -f style loop with a fixed poll interval.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Set, Tuple

from .. import constants as CONSTANTS
from .exceptions import OperationInterruptedError, TransientError
from .protocols import LogSource
from .retry import interruptible_sleep

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    message: str
    source: str = ""


def format_log_entry(entry: LogEntry) -> str:
    """Render an entry as "[HH:MM:SS.mmm] message" in local time."""
    local = entry.timestamp.astimezone()
    stamp = local.strftime("%H:%M:%S.") + f"{local.microsecond // 1000:03d}"
    return f"[{stamp}] {entry.message.rstrip()}"


def stream_logs(
    source: LogSource,
    emit: Callable[[str], None] = print,
    follow: bool = True,
    max_polls: Optional[int] = None,
    since: Optional[datetime] = None,
    sleep: Optional[Callable[[float], None]] = None
) -> int:
    """
    Emit log entries from `source` until interrupted.

    Args:
        source: Backend log source
        emit: Receives each formatted line
        follow: Keep polling after the first batch
        max_polls: Stop after this many fetches
        since: Start time; defaults to a few minutes ago

    Returns:
        Number of entries emitted
    """
    cursor = since or datetime.now(timezone.utc) - timedelta(minutes=CONSTANTS.LOG_LOOKBACK_MINUTES)
    # Fetches are inclusive of the cursor; entries already printed at it are remembered
    seen_at_cursor: Set[Tuple[datetime, str, str]] = set()
    emitted = 0
    polls = 0

    try:
        while True:
            polls += 1
            try:
                entries = source.fetch_logs(cursor)
            except TransientError as e:
                logger.warning(f"Log fetch failed, retrying: {e}")
                entries = []

            for entry in entries:
                key = (entry.timestamp, entry.source, entry.message)
                if entry.timestamp < cursor or key in seen_at_cursor:
                    continue
                if entry.timestamp > cursor:
                    cursor = entry.timestamp
                    seen_at_cursor = set()
                seen_at_cursor.add(key)
                emit(format_log_entry(entry))
                emitted += 1

            if not follow or (max_polls is not None and polls >= max_polls):
                break
            interruptible_sleep(source.log_poll_interval, sleep)
    except OperationInterruptedError:
        logger.info("Stopped streaming logs.")

    return emitted
