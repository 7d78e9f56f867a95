"""File-based response cache.

One JSON file per request fingerprint, expired by age. Caching is a
best-effort optimization: every failure in here is logged and turned into a
miss (or a skipped write) so the caller simply falls back to the network.
"""

import hashlib
import json
import logging
import os
import re
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, Union

from askcli.core.exceptions import CacheIOError
from askcli.domain.interfaces.cache import CacheService
from askcli.domain.models.common import CacheKey, CacheStats
from askcli.infrastructure.resilience.file_lock import atomic_write_text

logger = logging.getLogger(__name__)

# Default Configuration Constants
DEFAULT_CACHE_DIR = Path.home() / ".askcli" / "cache"
DEFAULT_EXPIRATION_HOURS = 24
DEFAULT_MAX_ENTRIES = 1000
DEFAULT_MAX_SIZE_BYTES = 100 * 1024 * 1024  # 100 MB
CACHE_FORMAT_VERSION = "1"
CACHE_FILE_SUFFIX = ".json"

_KEY_PATTERN = re.compile(r"^[0-9a-f]+$")


class ResponseCache(CacheService):
    """Caches responses on disk keyed by a SHA-256 request fingerprint."""

    def __init__(
        self,
        cache_dir: Optional[Union[str, Path]] = None,
        expiration_hours: float = DEFAULT_EXPIRATION_HOURS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES,
        clock: Callable[[], float] = time.time,
    ):
        """Initializes the cache and creates its directory if needed.

        Args:
            cache_dir: Directory holding the entries (defaults to ~/.askcli/cache).
            expiration_hours: Age after which an entry is treated as a miss.
            max_entries: Writes are skipped once this many entries exist.
            max_size_bytes: Writes are skipped once the store is this large.
            clock: Wall-clock time source in seconds.
        """
        self.cache_dir = Path(cache_dir) if cache_dir else DEFAULT_CACHE_DIR
        self.expiration_hours = expiration_hours
        self.max_entries = max_entries
        self.max_size_bytes = max_size_bytes
        self._clock = clock
        self._hits = 0
        self._misses = 0
        self._stats_lock = threading.Lock()
        self._setup_cache_dir()

        logger.info(f"ResponseCache initialized at {self.cache_dir} (expiration={expiration_hours}h)")

    @property
    def expiration_seconds(self) -> float:
        return self.expiration_hours * 60 * 60

    def _setup_cache_dir(self) -> None:
        """Creates the cache directory, readable by the owner only."""
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create cache directory {self.cache_dir}: {e}")
            return
        if os.name == "posix":
            try:
                os.chmod(self.cache_dir, 0o700)
            except OSError as e:
                logger.warning(f"Failed to restrict permissions on {self.cache_dir}: {e}")

    def _entry_path(self, key: CacheKey) -> Path:
        """Returns the file for `key`, refusing anything that is not a hex digest."""
        if not _KEY_PATTERN.match(key):
            raise CacheIOError(f"Invalid cache key format: {key!r}")
        return self.cache_dir / f"{key}{CACHE_FILE_SUFFIX}"

    def _iter_entries(self) -> Iterator[Path]:
        if not self.cache_dir.is_dir():
            return iter(())
        return (p for p in self.cache_dir.iterdir() if p.suffix == CACHE_FILE_SUFFIX and p.is_file())

    def _read_entry(self, path: Path) -> Dict[str, Any]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise CacheIOError(f"Failed to read cache entry {path.name}: {e}") from e
        if (
            not isinstance(data, dict)
            or not isinstance(data.get("response"), str)
            or not isinstance(data.get("created_at"), (int, float))
        ):
            raise CacheIOError(f"Malformed cache entry {path.name}")
        return data

    def _is_expired(self, created_at: float) -> bool:
        return self._clock() - created_at >= self.expiration_seconds

    def _record(self, hit: bool) -> None:
        with self._stats_lock:
            if hit:
                self._hits += 1
            else:
                self._misses += 1

    # --- CacheService Interface Implementation ---

    def generate_key(self, prompt: str, model: str, system_prompt: str) -> CacheKey:
        combined = f"{prompt}|{model}|{system_prompt}"
        return CacheKey(hashlib.sha256(combined.encode("utf-8")).hexdigest())

    def has_valid_cache(self, key: CacheKey) -> bool:
        """True if a fresh, readable entry exists. Does not touch the counters."""
        try:
            data = self._read_entry(self._entry_path(key))
        except CacheIOError:
            return False
        return data.get("format_version") == CACHE_FORMAT_VERSION and not self._is_expired(data["created_at"])

    def get(self, key: CacheKey) -> Optional[str]:
        try:
            path = self._entry_path(key)
            if not path.exists():
                logger.debug(f"Cache miss for key: {key}")
                self._record(hit=False)
                return None
            data = self._read_entry(path)
        except CacheIOError as e:
            logger.warning(f"Cache lookup failed: {e}")
            self._record(hit=False)
            return None

        if data.get("format_version") != CACHE_FORMAT_VERSION:
            logger.debug(f"Cache entry {key} has format {data.get('format_version')!r}; ignoring.")
            self._record(hit=False)
            return None
        if self._is_expired(data["created_at"]):
            logger.debug(f"Cache entry expired for key: {key}")
            self._record(hit=False)
            return None

        logger.debug(f"Cache hit for key: {key}")
        self._record(hit=True)
        return data["response"]

    def put(self, key: CacheKey, response: str) -> None:
        try:
            path = self._entry_path(key)
            if not self._has_room():
                return
            entry = {
                "response": response,
                "created_at": self._clock(),
                "format_version": CACHE_FORMAT_VERSION,
            }
            atomic_write_text(path, json.dumps(entry, indent=2))
            logger.debug(f"Cached response with key: {key}")
        except (CacheIOError, OSError, TypeError, ValueError) as e:
            logger.warning(f"Failed to write cache entry {key}: {e}")

    def _has_room(self) -> bool:
        """Admission guard for new entries; never evicts fresh ones."""
        stats = self.get_stats()
        if stats["count"] >= self.max_entries:
            logger.info("Cache full, cleaning expired entries")
            self.clean_expired()
            stats = self.get_stats()
            if stats["count"] >= self.max_entries:
                logger.warning("Cache at maximum capacity, skipping cache write")
                return False
        if stats["size_bytes"] > self.max_size_bytes:
            logger.warning("Cache size limit exceeded, skipping cache write")
            return False
        return True

    def clear(self) -> int:
        count = 0
        for path in list(self._iter_entries()):
            try:
                path.unlink()
                count += 1
            except FileNotFoundError:
                pass  # removed concurrently
            except OSError as e:
                logger.warning(f"Failed to remove cache entry {path.name}: {e}")
        logger.info(f"Cleared {count} cache entries from {self.cache_dir}")
        return count

    def clean_expired(self) -> int:
        count = 0
        for path in list(self._iter_entries()):
            try:
                try:
                    created_at = self._read_entry(path)["created_at"]
                except CacheIOError:
                    created_at = path.stat().st_mtime
                if self._is_expired(created_at):
                    path.unlink()
                    count += 1
            except FileNotFoundError:
                pass  # removed concurrently
            except OSError as e:
                logger.warning(f"Failed to clean cache entry {path.name}: {e}")
        if count:
            logger.info(f"Removed {count} expired cache entries")
        return count

    def get_stats(self) -> CacheStats:
        count = 0
        size_bytes = 0
        for path in self._iter_entries():
            try:
                size_bytes += path.stat().st_size
                count += 1
            except OSError:
                continue  # removed concurrently
        with self._stats_lock:
            return CacheStats(hits=self._hits, misses=self._misses, count=count, size_bytes=size_bytes)
