"""
Redis Store - Whole-record JSON persistence for templates and students.

Key Structure:
    {prefix}:student:{student_id}   -> String (JSON Student record)
    {prefix}:students:index         -> String (JSON list of registered student ids)
    {prefix}:template:{unit_id}     -> String (JSON {"seq": n, "unit": {...}})
    {prefix}:templates:seq          -> Integer (custom template insertion counter)

Records are read and written whole (last writer wins); callers that merge
node-level edits serialize per record themselves.
"""

import json
import logging
from typing import Any, List, Optional

import redis

from config import Settings, get_settings
from core.exceptions import StorageError

logger = logging.getLogger(__name__)


class RedisStore:
    def __init__(self, client: Optional[redis.Redis] = None, settings: Optional[Settings] = None):
        """
        Connect to Redis using settings (or environment variables).

        Args:
            client: Pre-built client (tests pass a fakeredis instance)
            settings: Connection and key prefix settings
        """
        self.settings = settings or get_settings()
        self.prefix = self.settings.key_prefix
        self.client = client or redis.Redis(
            host=self.settings.redis_host,
            port=self.settings.redis_port,
            password=self.settings.redis_password,
            db=self.settings.redis_db,
            decode_responses=True  # Return strings instead of bytes
        )

    # ==================== Key Builders ====================

    def key(self, *parts: str) -> str:
        """Namespaced key, e.g. key("student", "s1") -> "insight-map:student:s1"."""
        return ":".join((self.prefix,) + parts)

    def student_key(self, student_id: str) -> str:
        return self.key("student", student_id)

    def students_index_key(self) -> str:
        return self.key("students", "index")

    def template_key(self, unit_id: str) -> str:
        return self.key("template", unit_id)

    def template_seq_key(self) -> str:
        return self.key("templates", "seq")

    # ==================== Record Access ====================

    def get_json(self, key: str) -> Optional[Any]:
        """
        Read and decode one record.

        Returns:
            Decoded JSON value, or None if the key does not exist

        Raises:
            StorageError: backend failure or unparsable record
        """
        try:
            raw = self.client.get(key)
        except redis.RedisError as e:
            raise StorageError(f"Failed to read {key}: {e}", key=key) from e
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Corrupt record at {key}: {e}", key=key) from e

    def set_json(self, key: str, value: Any):
        """
        Encode and write one record, replacing it whole.

        Raises:
            StorageError: backend failure (never swallowed)
        """
        try:
            self.client.set(key, json.dumps(value, ensure_ascii=False))
        except redis.RedisError as e:
            raise StorageError(f"Failed to write {key}: {e}", key=key) from e

    def delete(self, *keys: str) -> int:
        """Delete records; returns how many existed."""
        if not keys:
            return 0
        try:
            return int(self.client.delete(*keys))
        except redis.RedisError as e:
            raise StorageError(f"Failed to delete {keys}: {e}") from e

    def scan_keys(self, *parts: str) -> List[str]:
        """All keys under a namespace, e.g. scan_keys("template") (sorted)."""
        pattern = self.key(*parts) + ":*"
        try:
            return sorted(self.client.scan_iter(match=pattern))
        except redis.RedisError as e:
            raise StorageError(f"Failed to scan {pattern}: {e}") from e

    def incr(self, key: str) -> int:
        try:
            return int(self.client.incr(key))
        except redis.RedisError as e:
            raise StorageError(f"Failed to increment {key}: {e}", key=key) from e

    def ping(self) -> bool:
        """True if the backend answers."""
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            logger.warning("Redis ping failed", exc_info=True)
            return False
