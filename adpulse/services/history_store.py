"""
Per-day metric history used as the anomaly baseline.

There is at most one HistoryPoint per (provider, date): upsert() replaces the
day's point, so re-running a cycle on the same day corrects the value instead
of duplicating it. recent() returns a finite, freshly read list, most recent
first.

Two implementations:
- JsonHistoryStore: `{cache_dir}/metrics-history.json`, used when no
  DATABASE_URL is configured. Prunes points older than the retention window.
- PostgresHistoryStore: the metric_history table via the asyncpg pool,
  upserting with INSERT ... ON CONFLICT.

Write failures surface as PersistenceFailure. So does an upsert against a
JSON document that exists but cannot be parsed: the file is left untouched
rather than replaced by a one-point history. recent() treats the same file
as empty and logs the error.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import date, timedelta
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import TypeAdapter, ValidationError

from adpulse.core.database import get_db_pool
from adpulse.models.enums import Provider
from adpulse.models.schemas import HistoryPoint, utc_now
from adpulse.services.errors import PersistenceFailure
from adpulse.services.snapshot_cache import atomic_write_text


logger = logging.getLogger(__name__)

HISTORY_FILENAME = 'metrics-history.json'

_POINTS_ADAPTER = TypeAdapter(List[HistoryPoint])


class HistoryStore(ABC):
    """Append/rollup store of per-day metric points per provider."""

    @abstractmethod
    async def upsert(self, point: HistoryPoint) -> None:
        """Insert the day's point or replace the existing one for (provider, date)."""

    @abstractmethod
    async def recent(self, provider: Provider, days: int) -> List[HistoryPoint]:
        """Up to `days` most recent daily points for the provider, newest first."""


# =============================================================================
# JSON File Store
# =============================================================================

class JsonHistoryStore(HistoryStore):
    """
    History kept in a single JSON document.

    Args:
        cache_dir: Directory holding metrics-history.json.
        retention_days: Points older than this many days are pruned on write.
        today: Current UTC date source (injectable for tests).
    """

    def __init__(
        self,
        cache_dir: Path,
        retention_days: int = 90,
        today: Optional[Callable[[], date]] = None,
    ):
        self.path = Path(cache_dir) / HISTORY_FILENAME
        self.retention_days = retention_days
        self._today = today or (lambda: utc_now().date())
        self._lock = asyncio.Lock()

    def _read(self) -> Dict[Tuple[Provider, date], HistoryPoint]:
        """Parse the document; an existing but unreadable file raises PersistenceFailure."""
        if not self.path.exists():
            return {}
        try:
            points = _POINTS_ADAPTER.validate_json(self.path.read_bytes())
        except (OSError, ValidationError) as exc:
            raise PersistenceFailure(f"Error reading metrics history from {self.path}: {exc}") from exc
        return {(point.provider, point.date): point for point in points}

    def _load(self) -> Dict[Tuple[Provider, date], HistoryPoint]:
        try:
            return self._read()
        except PersistenceFailure as exc:
            logger.error(str(exc))
            return {}

    def _save(self, points: Dict[Tuple[Provider, date], HistoryPoint]) -> None:
        ordered = sorted(points.values(), key=lambda p: (p.provider.value, p.date))
        atomic_write_text(self.path, _POINTS_ADAPTER.dump_json(ordered, indent=2).decode('utf-8'))

    async def upsert(self, point: HistoryPoint) -> None:
        async with self._lock:
            # Never rewrite a document we could not parse; that would drop its points
            points = self._read()
            points[(point.provider, point.date)] = point

            cutoff = self._today() - timedelta(days=self.retention_days)
            points = {key: value for key, value in points.items() if value.date >= cutoff}

            try:
                self._save(points)
            except OSError as exc:
                raise PersistenceFailure(f"Error writing metrics history: {exc}") from exc

    async def recent(self, provider: Provider, days: int) -> List[HistoryPoint]:
        if days <= 0:
            return []
        points = [point for (owner, _), point in self._load().items() if owner == provider]
        points.sort(key=lambda p: p.date, reverse=True)
        return points[:days]


# =============================================================================
# PostgreSQL Store
# =============================================================================

class PostgresHistoryStore(HistoryStore):
    """History kept in the metric_history table (see adpulse.core.database)."""

    async def upsert(self, point: HistoryPoint) -> None:
        try:
            pool = await get_db_pool()
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO metric_history (provider, metric_date, fields, updated_at)
                    VALUES ($1, $2, $3::jsonb, NOW())
                    ON CONFLICT (provider, metric_date)
                    DO UPDATE SET
                        fields = EXCLUDED.fields,
                        updated_at = EXCLUDED.updated_at
                    """,
                    point.provider.value,
                    point.date,
                    json.dumps(point.fields),
                )
        except Exception as exc:
            raise PersistenceFailure(
                f"Error upserting history for {point.provider.value} on {point.date}: {exc}"
            ) from exc

    async def recent(self, provider: Provider, days: int) -> List[HistoryPoint]:
        if days <= 0:
            return []

        pool = await get_db_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT provider, metric_date, fields
                FROM metric_history
                WHERE provider = $1
                ORDER BY metric_date DESC
                LIMIT $2
                """,
                provider.value,
                days,
            )

        points: List[HistoryPoint] = []
        for row in rows:
            fields = row['fields']
            # asyncpg hands back jsonb as text unless a codec is registered
            if isinstance(fields, str):
                fields = json.loads(fields)
            points.append(HistoryPoint(provider=row['provider'], date=row['metric_date'], fields=fields))
        return points
