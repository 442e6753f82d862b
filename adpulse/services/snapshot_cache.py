"""
Durable store for the latest merged multi-provider snapshot.

The snapshot is a singleton JSON document (`{cache_dir}/metrics.json`),
replaced wholesale on every successful cycle. Writes go to a temporary file
first and are moved into place with os.replace, so a crash mid-write leaves
the previous document intact.

No expiry is enforced here: staleness is a caller concern, answered with
should_refresh() and time_since_update().
"""

import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

from pydantic import ValidationError

from adpulse.models.schemas import AggregateSnapshot, utc_now


logger = logging.getLogger(__name__)

SNAPSHOT_FILENAME = 'metrics.json'


def atomic_write_text(path: Path, text: str) -> None:
    """Write `text` to `path` via a sibling temp file and os.replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix='.tmp')
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as handle:
            handle.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def humanize_age(then: datetime, now: datetime) -> str:
    """'5 minutes ago', '1 hour ago', '2 days ago'."""
    minutes = max(0, int((now - then).total_seconds() // 60))
    if minutes < 60:
        return f"{minutes} minute{'' if minutes == 1 else 's'} ago"

    hours = minutes // 60
    if hours < 24:
        return f"{hours} hour{'' if hours == 1 else 's'} ago"

    days = hours // 24
    return f"{days} day{'' if days == 1 else 's'} ago"


class SnapshotCache:
    """JSON-file backed cache of the latest AggregateSnapshot."""

    def __init__(self, cache_dir: Path):
        self.path = Path(cache_dir) / SNAPSHOT_FILENAME

    def read(self) -> Tuple[Optional[AggregateSnapshot], Optional[datetime]]:
        """
        Return the cached snapshot and its timestamp.

        A missing or unreadable document reads as (None, None).
        """
        if not self.path.exists():
            return None, None

        try:
            snapshot = AggregateSnapshot.model_validate_json(self.path.read_text(encoding='utf-8'))
        except (OSError, ValidationError) as exc:
            logger.error(f"Error reading cached metrics from {self.path}: {exc}")
            return None, None

        return snapshot, snapshot.timestamp

    def write(self, snapshot: AggregateSnapshot) -> bool:
        """Persist the snapshot; False when the durable write failed."""
        try:
            atomic_write_text(self.path, snapshot.model_dump_json(indent=2))
        except OSError as exc:
            logger.error(f"Error writing cached metrics to {self.path}: {exc}")
            return False
        return True

    def time_since_update(self, now: Optional[datetime] = None) -> Optional[str]:
        _, timestamp = self.read()
        if timestamp is None:
            return None
        return humanize_age(timestamp, now or utc_now())

    def should_refresh(self, max_age_hours: float, now: Optional[datetime] = None) -> bool:
        """True when nothing is cached or the cached snapshot is at least max_age_hours old."""
        _, timestamp = self.read()
        if timestamp is None:
            return True
        age_hours = ((now or utc_now()) - timestamp).total_seconds() / 3600
        return age_hours >= max_age_hours
