"""Sync state persistence layer.

``SyncState`` is the single owner of the JSON state document in
``.docmirror/notion-state.json``.  It maps:

* source file -> ``SyncRecord`` (``pages``)
* directory path key -> container page id (``hierarchy``)
* asset content hash -> ``UploadCacheEntry`` (``uploads``)

plus run statistics and a free-form ``metadata`` map.

Key design choices:

* **Write-through** -- every mutating method saves before returning, so a
  crash loses at most the remote effect that was not yet recorded.
* **Atomic writes** -- ``_save()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Forward compatibility** -- unknown top-level keys are kept on load and
  written back unchanged.
* **Content hashing** -- ``content_hash()`` normalises content (BOM,
  line-endings, trailing whitespace) before SHA-256 so hashes are stable
  across platforms.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from .models import SyncRecord, UploadCacheEntry

logger = logging.getLogger(__name__)

STATE_VERSION = 2

AUTO_ROOT_PAGE_ID = "autoCreatedRootPageId"
AUTO_ROOT_TITLE = "autoCreatedRootTitle"
AUTO_ROOT_CREATED_AT = "autoCreatedAt"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _empty_statistics() -> dict[str, Any]:
    return {
        "total_syncs": 0,
        "last_sync_duration": 0.0,
        "total_pages": 0,
        "total_blocks": 0,
    }


class SyncState:
    """Durable, write-through repository for sync bookkeeping.

    Args:
        state_file: Path of the JSON state document.
        root_page_id: Configured root page.  When it differs from the
            persisted one, page and hierarchy maps are reset.
        upload_ttl: Lifetime of upload cache entries.
        read_only: Keep mutations in memory only (dry runs).
        clock: Returns the current UTC time (injectable for tests).
    """

    def __init__(
        self,
        state_file: Path,
        root_page_id: str | None = None,
        upload_ttl: timedelta = timedelta(minutes=10),
        read_only: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.state_file = state_file
        self.upload_ttl = upload_ttl
        self.read_only = read_only
        self._clock = clock
        self._lock = threading.RLock()
        self._data: dict[str, Any] = self._fresh(root_page_id)
        self._load(root_page_id)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @staticmethod
    def _fresh(root_page_id: str | None) -> dict[str, Any]:
        return {
            "version": STATE_VERSION,
            "root_page_id": root_page_id,
            "last_sync_at": None,
            "pages": {},
            "hierarchy": {},
            "uploads": {},
            "statistics": _empty_statistics(),
            "metadata": {},
        }

    def _load(self, root_page_id: str | None) -> None:
        if not self.state_file.exists():
            return
        try:
            with open(self.state_file, encoding="utf-8") as fh:
                loaded = json.load(fh)
        except (OSError, ValueError) as exc:
            backup = self.state_file.with_suffix(".json.bak")
            logger.warning(
                "Could not read state file %s (%s); starting fresh, old file kept at %s",
                self.state_file,
                exc,
                backup,
            )
            if not self.read_only:
                os.replace(self.state_file, backup)
            return
        if not isinstance(loaded, dict):
            logger.warning("State file %s is not a JSON object; ignoring it", self.state_file)
            return

        merged = self._fresh(root_page_id)
        merged.update(loaded)
        merged["statistics"] = {**_empty_statistics(), **(loaded.get("statistics") or {})}
        self._data = merged

        if loaded.get("root_page_id") != root_page_id:
            logger.warning(
                "Root page changed (%s -> %s), resetting sync state",
                loaded.get("root_page_id"),
                root_page_id,
            )
            self._reset(root_page_id)

    def _reset(self, root_page_id: str | None) -> None:
        with self._lock:
            extras = {
                k: v for k, v in self._data.items() if k not in self._fresh(None)
            }
            self._data = {**self._fresh(root_page_id), **extras}
            self._save()

    def _save(self) -> None:
        """Persist the state document atomically."""
        if self.read_only:
            return
        with self._lock:
            state_dir = self.state_file.parent
            state_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(state_dir), suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(self._data, fh, indent=2, sort_keys=False)
                os.replace(tmp_path, self.state_file)
            except BaseException:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
                raise

    def to_dict(self) -> dict[str, Any]:
        """Return a deep copy of the state document."""
        with self._lock:
            return json.loads(json.dumps(self._data))

    @property
    def root_page_id(self) -> str | None:
        return self._data.get("root_page_id")

    @property
    def last_sync_at(self) -> str | None:
        return self._data.get("last_sync_at")

    # ------------------------------------------------------------------
    # Page records
    # ------------------------------------------------------------------

    def get_record(self, file_path: str) -> SyncRecord | None:
        """Return the record for *file_path*, or ``None`` if untracked."""
        raw = self._data["pages"].get(file_path)
        return SyncRecord(**raw) if raw else None

    def records(self) -> dict[str, SyncRecord]:
        return {path: SyncRecord(**raw) for path, raw in self._data["pages"].items()}

    def record_sync(
        self,
        file_path: str,
        page_id: str,
        content_hash: str,
        title: str,
        block_count: int,
        parent_id: str | None = None,
    ) -> SyncRecord:
        """Record that *file_path* is now mirrored by *page_id*.

        Replaces any previous record, so at most one live page is tracked
        per file.
        """
        record = SyncRecord(
            page_id=page_id,
            content_hash=content_hash,
            title=title,
            block_count=block_count,
            last_synced_at=self._clock().isoformat(),
            parent_id=parent_id,
        )
        with self._lock:
            self._data["pages"][file_path] = record.model_dump()
            self._save()
        return record

    def remove_record(self, file_path: str) -> SyncRecord | None:
        """Forget *file_path*; returns the removed record, if any."""
        with self._lock:
            raw = self._data["pages"].pop(file_path, None)
            if raw is not None:
                self._save()
        return SyncRecord(**raw) if raw else None

    def needs_sync(self, file_path: str, content_hash: str) -> bool:
        record = self.get_record(file_path)
        return record is None or record.content_hash != content_hash

    def files_needing_sync(self, hashes: dict[str, str]) -> list[str]:
        """Return the paths in *hashes* (path -> hash) that are out of date."""
        return [path for path, digest in hashes.items() if self.needs_sync(path, digest)]

    def prune_orphans(
        self, existing: Iterable[str], scope: str | None = None
    ) -> list[str]:
        """Remove records whose file is not in *existing*.

        Args:
            existing: File paths currently present in the corpus.
            scope: Only consider records under this path prefix.

        Returns:
            The pruned file paths.
        """
        present = set(existing)
        prefix = scope.rstrip("/") + "/" if scope else ""
        with self._lock:
            orphans = [
                path
                for path in self._data["pages"]
                if path.startswith(prefix) and path not in present
            ]
            for path in orphans:
                del self._data["pages"][path]
            if orphans:
                self._save()
        for path in orphans:
            logger.info("Pruned orphaned record: %s", path)
        return orphans

    # ------------------------------------------------------------------
    # Hierarchy map
    # ------------------------------------------------------------------

    def hierarchy_page_id(self, path_key: str) -> str | None:
        return self._data["hierarchy"].get(path_key)

    def set_hierarchy_page_id(self, path_key: str, page_id: str) -> None:
        with self._lock:
            self._data["hierarchy"][path_key] = page_id
            self._save()

    def invalidate_hierarchy_entry(self, path_key: str) -> bool:
        """Drop the container page for *path_key*; True if one was mapped."""
        with self._lock:
            removed = self._data["hierarchy"].pop(path_key, None) is not None
            if removed:
                self._save()
        return removed

    def hierarchy_map(self) -> dict[str, str]:
        return dict(self._data["hierarchy"])

    # ------------------------------------------------------------------
    # Upload cache
    # ------------------------------------------------------------------

    def lookup_upload(self, content_hash: str) -> UploadCacheEntry | None:
        """Return a live cache entry for *content_hash*.

        An expired entry is purged and ``None`` returned.
        """
        raw = self._data["uploads"].get(content_hash)
        if raw is None:
            return None
        entry = UploadCacheEntry(**raw)
        if entry.is_expired(self.upload_ttl, self._clock()):
            with self._lock:
                self._data["uploads"].pop(content_hash, None)
                self._save()
            logger.debug("Upload cache entry %s expired", content_hash[:12])
            return None
        return entry

    def record_upload(
        self,
        content_hash: str,
        remote_reference: str,
        kind: str = "image",
        size_bytes: int = 0,
        file_name: str | None = None,
    ) -> UploadCacheEntry:
        entry = UploadCacheEntry(
            remote_reference=remote_reference,
            uploaded_at=self._clock().isoformat(),
            kind=kind,
            size_bytes=size_bytes,
            file_name=file_name,
        )
        with self._lock:
            self._data["uploads"][content_hash] = entry.model_dump()
            self._save()
        return entry

    def cleanup_expired_uploads(self) -> int:
        """Purge every expired upload cache entry; returns how many."""
        now = self._clock()
        with self._lock:
            expired = [
                digest
                for digest, raw in self._data["uploads"].items()
                if UploadCacheEntry(**raw).is_expired(self.upload_ttl, now)
            ]
            for digest in expired:
                del self._data["uploads"][digest]
            if expired:
                self._save()
        if expired:
            logger.info("Cleaned up %d expired upload cache entries", len(expired))
        return len(expired)

    def upload_cache_statistics(self) -> dict[str, Any]:
        now = self._clock()
        valid = expired = total_size = 0
        for raw in self._data["uploads"].values():
            entry = UploadCacheEntry(**raw)
            if entry.is_expired(self.upload_ttl, now):
                expired += 1
            else:
                valid += 1
                total_size += entry.size_bytes
        return {
            "total_entries": valid + expired,
            "valid_entries": valid,
            "expired_entries": expired,
            "total_size": total_size,
            "ttl_minutes": self.upload_ttl.total_seconds() / 60,
        }

    # ------------------------------------------------------------------
    # Metadata and statistics
    # ------------------------------------------------------------------

    def get_metadata(self, key: str, default: Any = None) -> Any:
        return self._data["metadata"].get(key, default)

    def set_metadata(self, key: str, value: Any) -> None:
        with self._lock:
            self._data["metadata"][key] = value
            self._save()

    def remove_metadata(self, key: str) -> None:
        with self._lock:
            if self._data["metadata"].pop(key, None) is not None:
                self._save()

    def statistics(self) -> dict[str, Any]:
        return dict(self._data["statistics"])

    def update_statistics(self, duration: float) -> None:
        """Record a finished run: bump the counter and refresh the totals."""
        pages = self._data["pages"].values()
        with self._lock:
            stats = self._data["statistics"]
            stats["total_syncs"] += 1
            stats["last_sync_duration"] = round(duration, 3)
            stats["total_pages"] = len(pages)
            stats["total_blocks"] = sum(raw.get("block_count", 0) for raw in pages)
            self._data["last_sync_at"] = self._clock().isoformat()
            self._save()

    # ------------------------------------------------------------------
    # Content hashing
    # ------------------------------------------------------------------

    @staticmethod
    def content_hash(content: str | bytes) -> str:
        """Compute a normalised SHA-256 hex digest of *content*.

        Text is normalised first (applied in order):

        1. Strip BOM (``\\ufeff``).
        2. Replace ``\\r\\n`` with ``\\n``.
        3. Right-strip each line.
        4. Strip trailing empty lines.

        Bytes (binary assets) are hashed as-is.
        """
        if isinstance(content, bytes):
            return hashlib.sha256(content).hexdigest()
        text = content.lstrip("\ufeff")
        text = text.replace("\r\n", "\n")
        lines = [line.rstrip() for line in text.split("\n")]
        while lines and lines[-1] == "":
            lines.pop()
        normalised = "\n".join(lines)
        return hashlib.sha256(normalised.encode("utf-8")).hexdigest()
