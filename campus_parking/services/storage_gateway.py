# campus_parking/services/storage_gateway.py
"""
Persistence gateway: key/value JSON storage shared by every aggregate.

Each aggregate owns one key (vehicles, sessions, exceptions, settings, stats) and never
touches another's. Keys are namespaced with STORAGE_PREFIX.

Writes:
  save(key, value)            immediate write
  debounced_save(key, value)  buffered; repeated writes to a key inside the quiet interval
                              coalesce into one, written by flush_due() / flush()
  flush()                     writes everything buffered; every shutdown path calls it

Backups are kept under the `backups` key, newest last, at most BACKUP_RETENTION of them.
When a write would exceed STORAGE_QUOTA_BYTES the oldest backups are pruned down to
BACKUP_PRUNE_KEEP and the write is retried once.
"""

import asyncio
import json
import time
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from campus_parking.config import settings
from campus_parking.errors import NotFound, StorageError, StorageQuotaExceeded
from campus_parking.models.storage_entry import StorageEntry
from campus_parking.utils.logger import get_logger

logger = get_logger(__name__)

KEY_VEHICLES = "vehicles"
KEY_SESSIONS = "sessions"
KEY_EXCEPTIONS = "exceptions"
KEY_SETTINGS = "settings"
KEY_STATS = "stats"
KEY_BACKUPS = "backups"
KEY_LAST_SYNC = "last-sync"

ALL_KEYS = (KEY_VEHICLES, KEY_SESSIONS, KEY_EXCEPTIONS, KEY_SETTINGS, KEY_STATS, KEY_BACKUPS, KEY_LAST_SYNC)


def _json_default(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Not JSON serializable: {type(value).__name__}")


class StorageGateway:
    def __init__(
        self,
        session_factory,
        prefix: str = settings.STORAGE_PREFIX,
        quota_bytes: int = settings.STORAGE_QUOTA_BYTES,
        backup_retention: int = settings.BACKUP_RETENTION,
        backup_prune_keep: int = settings.BACKUP_PRUNE_KEEP,
        version: str = settings.BACKUP_VERSION,
        default_delay_ms: int = settings.DEBOUNCE_MS,
        clock: Callable[[], datetime] = datetime.now,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self._session_factory = session_factory
        self.prefix = prefix
        self.quota_bytes = quota_bytes
        self.backup_retention = backup_retention
        self.backup_prune_keep = backup_prune_keep
        self.version = version
        self.default_delay_ms = default_delay_ms
        self._clock = clock
        self._monotonic = monotonic
        self._pending: dict[str, tuple[Any, float]] = {}
        self._flush_task: Optional[asyncio.Task] = None

    def full_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    # ── Basic operations ─────────────────────────────────────────────────

    def save(self, key: str, value: Any) -> bool:
        """
        Write `value` under `key` now. Supersedes any buffered write for the key.
        Returns False (and logs) when the value could not be stored.
        """
        payload = json.dumps(value, default=_json_default, ensure_ascii=False)
        try:
            self._write(key, payload)
        except StorageQuotaExceeded:
            logger.error(f"[STORAGE] Quota exceeded writing '{key}', pruning old backups...")
            self._prune_backups(self.backup_prune_keep)
            try:
                self._write(key, payload)
            except StorageError as e:
                logger.error(f"[STORAGE] Failed to save '{key}' after pruning backups: {e.message}")
                return False
        except SQLAlchemyError as e:
            logger.error(f"[STORAGE] Save failed for '{key}': {e}", exc_info=True)
            return False
        self._pending.pop(key, None)
        return True

    def load(self, key: str, default: Any = None) -> Any:
        """Read `key`. A buffered (not yet flushed) value wins over the stored one."""
        if key in self._pending:
            return self._pending[key][0]
        try:
            with self._session_factory() as db:
                entry = db.get(StorageEntry, self.full_key(key))
                if entry is None:
                    return default
                return json.loads(entry.value)
        except (SQLAlchemyError, json.JSONDecodeError) as e:
            logger.error(f"[STORAGE] Load failed for '{key}': {e}")
            return default

    def remove(self, key: str):
        self._pending.pop(key, None)
        try:
            with self._session_factory() as db:
                db.query(StorageEntry).filter(StorageEntry.key == self.full_key(key)).delete()
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"[STORAGE] Remove failed for '{key}': {e}")

    def clear_all(self):
        """Remove every key under this gateway's prefix, buffered writes included."""
        self._pending.clear()
        with self._session_factory() as db:
            db.query(StorageEntry).filter(StorageEntry.key.startswith(self.prefix)).delete(
                synchronize_session=False
            )
            db.commit()
        logger.warning("[STORAGE] All stored data cleared")

    def _write(self, key: str, payload: str):
        full_key = self.full_key(key)
        with self._session_factory() as db:
            others = db.query(
                func.coalesce(func.sum(func.length(StorageEntry.key) + func.length(StorageEntry.value)), 0)
            ).filter(StorageEntry.key != full_key).scalar()
            if int(others) + len(full_key) + len(payload) > self.quota_bytes:
                raise StorageQuotaExceeded(f"Storage quota of {self.quota_bytes} bytes exceeded")

            entry = db.get(StorageEntry, full_key)
            if entry is None:
                db.add(StorageEntry(key=full_key, value=payload, updated_at=self._clock()))
            else:
                entry.value = payload
                entry.updated_at = self._clock()
            db.commit()

    # ── Write buffer ─────────────────────────────────────────────────────

    def debounced_save(self, key: str, value: Any, delay_ms: Optional[int] = None):
        """Buffer a write; the quiet interval restarts on every call for the same key."""
        delay = self.default_delay_ms if delay_ms is None else delay_ms
        self._pending[key] = (value, self._monotonic() + delay / 1000)

    def pending_keys(self) -> list[str]:
        return list(self._pending)

    def flush_due(self) -> int:
        """Write buffered values whose quiet interval has elapsed. Returns how many were written."""
        now = self._monotonic()
        due = [key for key, (_, deadline) in self._pending.items() if deadline <= now]
        return self._flush_keys(due)

    def flush(self) -> int:
        """Write every buffered value now."""
        return self._flush_keys(list(self._pending))

    def _flush_keys(self, keys: list[str]) -> int:
        written = 0
        for key in keys:
            value, _ = self._pending[key]
            if self.save(key, value):
                written += 1
        if written:
            self.save(KEY_LAST_SYNC, self._clock().isoformat())
            logger.debug(f"[STORAGE] Flushed {written} buffered write(s)")
        return written

    async def _run_flush_loop(self, interval: float):
        while True:
            try:
                self.flush_due()
            except Exception as e:
                logger.error(f"[STORAGE] Background flush error: {e}", exc_info=True)
            await asyncio.sleep(interval)

    def start_flush_loop(self, interval: float = settings.FLUSH_INTERVAL_SECONDS) -> asyncio.Task:
        """Launch the background flusher. Called once at startup."""
        if self._flush_task is None or self._flush_task.done():
            self._flush_task = asyncio.create_task(self._run_flush_loop(interval), name="storage-flush")
            logger.info(f"[STORAGE] Background flush every {interval}s")
        return self._flush_task

    async def stop_flush_loop(self):
        """Stop the background flusher and write anything still buffered."""
        if self._flush_task is not None:
            self._flush_task.cancel()
            try:
                await self._flush_task
            except asyncio.CancelledError:
                pass
            self._flush_task = None
        written = self.flush()
        logger.info(f"[STORAGE] Flush on shutdown wrote {written} key(s)")

    # ── Info ─────────────────────────────────────────────────────────────

    def storage_info(self) -> dict:
        with self._session_factory() as db:
            used = db.query(
                func.coalesce(func.sum(func.length(StorageEntry.key) + func.length(StorageEntry.value)), 0)
            ).filter(StorageEntry.key.startswith(self.prefix)).scalar()
        used = int(used)
        return {
            "used": used,
            "total": self.quota_bytes,
            "percentage": round(used / self.quota_bytes * 100, 2) if self.quota_bytes else 0.0,
        }

    def last_sync(self) -> Optional[str]:
        return self.load(KEY_LAST_SYNC, None)

    # ── Backups ──────────────────────────────────────────────────────────

    def create_backup(self, data: dict) -> dict:
        backup = {
            "timestamp": self._clock().isoformat(),
            "version": self.version,
            "data": data,
        }
        backups = self.load(KEY_BACKUPS, [])
        backups.append(backup)
        if not self.save(KEY_BACKUPS, backups[-self.backup_retention:]):
            raise StorageError("Could not store backup")
        logger.info(f"[STORAGE] Backup created at {backup['timestamp']}")
        return backup

    def list_backups(self) -> list[dict]:
        return self.load(KEY_BACKUPS, [])

    def latest_backup(self) -> Optional[dict]:
        backups = self.list_backups()
        return backups[-1] if backups else None

    def delete_backup(self, timestamp: str):
        backups = self.list_backups()
        remaining = [b for b in backups if b.get("timestamp") != timestamp]
        if len(remaining) == len(backups):
            raise NotFound(f"Backup {timestamp} not found")
        self.save(KEY_BACKUPS, remaining)

    def _prune_backups(self, keep: int):
        backups = self.load(KEY_BACKUPS, [])
        if len(backups) <= keep:
            return
        payload = json.dumps(backups[-keep:] if keep else [], default=_json_default, ensure_ascii=False)
        try:
            self._write(KEY_BACKUPS, payload)
            logger.warning(f"[STORAGE] Pruned backups to newest {keep}")
        except StorageError as e:
            logger.error(f"[STORAGE] Pruning backups failed: {e.message}")
