"""Redis-backed broadcaster for relay session snapshots."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

import redis
from redis import Redis
from redis.exceptions import RedisError

from .heartbeat import HeartbeatLoop

LOGGER = logging.getLogger(__name__)


class StatusBroadcaster:
    """Publish active-stream snapshots to Redis for downstream consumers.

    Without a Redis URL every operation is a no-op, so the relay runs the same
    with or without a status store.
    """

    def __init__(
        self,
        *,
        redis_url: Optional[str],
        key: str = "hls_relay:streams",
        channel: Optional[str] = "hls_relay:streams:events",
        ttl_seconds: int = 30,
        client_factory: Optional[Callable[[str], Redis]] = None,
    ) -> None:
        self._redis_url = (redis_url or "").strip()
        self._key = key.strip() or "hls_relay:streams"
        self._channel = channel.strip() if isinstance(channel, str) and channel.strip() else None
        self._ttl = max(0, int(ttl_seconds))
        self._client_factory = client_factory or self._default_client
        self._client: Optional[Redis] = None
        self._last_error: Optional[str] = None
        self._heartbeat: Optional[HeartbeatLoop] = None
        self._connect()

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _default_client(url: str) -> Redis:
        return redis.from_url(url, socket_timeout=3, health_check_interval=30)

    def _connect(self) -> None:
        if not self._redis_url:
            self._last_error = "Redis URL not configured"
            self._client = None
            return

        previous = self._client
        try:
            client = self._client_factory(self._redis_url)
            client.ping()
        except (RedisError, OSError) as exc:
            LOGGER.warning("Failed to connect to Redis for status broadcasting: %s", exc)
            self._client = None
            self._last_error = f"Failed to connect to Redis: {exc}"
            return

        if previous is not None and previous is not client:
            self._close_client(previous)
        self._client = client
        self._last_error = None

    def _ensure_client(self) -> Optional[Redis]:
        client = self._client
        if client is not None:
            return client
        if not self._redis_url:
            return None
        self._connect()
        return self._client

    def close(self) -> None:
        self.stop_heartbeat()
        client = self._client
        if client is None:
            return
        self._close_client(client)
        self._client = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def enabled(self) -> bool:
        return bool(self._redis_url)

    @property
    def available(self) -> bool:
        return self._ensure_client() is not None

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def publish(self, snapshot: Mapping[str, Any]) -> None:
        """Persist and broadcast the latest snapshot."""

        client = self._ensure_client()
        if client is None:
            return
        payload = self._serialize(snapshot)
        try:
            if self._ttl > 0:
                client.set(self._key, payload, ex=self._ttl)
            else:
                client.set(self._key, payload)
            if self._channel:
                client.publish(self._channel, payload)
            self._last_error = None
        except RedisError as exc:
            self._last_error = f"Failed to publish relay status: {exc}"
            LOGGER.debug("Failed to publish relay status to Redis: %s", exc)
            self._close_client(client)
            self._client = None

    def clear(self) -> None:
        client = self._ensure_client()
        if client is None:
            return
        try:
            client.delete(self._key)
        except RedisError:
            LOGGER.debug("Failed to clear relay status key from Redis")

    def start_heartbeat(self, interval_seconds: float, snapshot: Callable[[], Mapping[str, Any]]) -> None:
        """Republish ``snapshot()`` periodically so the key outlives its TTL."""

        if not self.enabled:
            return
        if self._heartbeat is None:
            self._heartbeat = HeartbeatLoop(
                interval_seconds,
                lambda: self.publish(snapshot()),
                name="hls-relay-status-heartbeat",
            )
        self._heartbeat.start()

    def stop_heartbeat(self) -> None:
        heartbeat = self._heartbeat
        if heartbeat is not None:
            heartbeat.stop()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _close_client(client: Redis) -> None:
        try:
            client.close()
        except RedisError:
            LOGGER.debug("Failed to close Redis client", exc_info=True)

    @staticmethod
    def _serialize(snapshot: Mapping[str, Any]) -> str:
        payload: Dict[str, Any] = {
            "origin": "hls_relay",
            "updated_at": datetime.now(timezone.utc).isoformat(),
            "streams": dict(snapshot),
        }
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)


__all__ = ["StatusBroadcaster"]
