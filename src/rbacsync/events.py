from __future__ import annotations

import logging
import re
import threading
from typing import Any, Optional, Union

import redis

from .config import DEFAULT_CHANNEL, RELOAD_MARKER
from .core.ports import PolicyEnforcer
from .loader import PolicyLoader
from .polling import VersionPollingService

logger = logging.getLogger("rbacsync.events")

_RELOAD_RE = re.compile(rf"^{re.escape(RELOAD_MARKER)}:(?P<version>[+-]?\d+)$")


def parse_reload_message(body: Union[bytes, bytearray, str, None]) -> Optional[int]:
    """Return the version carried by a ``reload:<version>`` message, or None."""
    if body is None:
        return None
    if isinstance(body, (bytes, bytearray)):
        try:
            body = bytes(body).decode("ascii")
        except UnicodeDecodeError:
            return None
    m = _RELOAD_RE.match(str(body).strip())
    if not m:
        return None
    return int(m.group("version"))


def format_reload_message(version: int) -> str:
    return f"{RELOAD_MARKER}:{int(version)}"


class PolicyEventListener:
    """
    Apply ``reload:<version>`` notifications from the shared channel.

    A well-formed message overwrites the poller's cached version and reloads
    the policies right away, so instances sharing one rule store converge
    within one message round-trip instead of one poll interval. Any other
    message is ignored. Nothing raised while handling a message escapes.
    """

    def __init__(
        self,
        polling: VersionPollingService,
        loader: PolicyLoader,
        enforcer: PolicyEnforcer,
    ) -> None:
        self.polling = polling
        self.loader = loader
        self.enforcer = enforcer

    def on_message(self, body: Union[bytes, bytearray, str, None], channel: Optional[str] = None) -> bool:
        """Handle one message.

        Returns:
            True if the message triggered a successful reload.
        """
        channel = channel or "unknown"
        try:
            logger.debug("Received message on channel %s: %r", channel, body)
            version = parse_reload_message(body)
            if version is None:
                logger.debug("Ignoring unknown message: %r", body)
                return False

            logger.info("Processing policy reload event from channel %s", channel)
            self.polling.set_cached_version(version)
            self.loader.load_policies(self.enforcer)
            logger.info("Policy reload completed successfully, version: %d", version)
            return True
        except Exception:
            logger.exception("Failed to process policy reload message, ignoring")
            return False


def _decode(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return value


class RedisPolicySubscriber:
    """
    Feed messages from a Redis pub/sub channel to a ``PolicyEventListener``.

    The subscription runs on its own daemon thread. Connection errors are
    logged and the subscription is re-established after ``retry_delay``
    seconds; ``stop()`` ends it.
    """

    def __init__(
        self,
        client: Any,
        listener: PolicyEventListener,
        *,
        channel: str = DEFAULT_CHANNEL,
        poll_timeout: float = 1.0,
        retry_delay: float = 5.0,
        thread_daemon: bool = True,
    ) -> None:
        self.client = client
        self.listener = listener
        self.channel = channel
        self.poll_timeout = float(poll_timeout)
        self.retry_delay = float(retry_delay)
        self.thread_daemon = bool(thread_daemon)

        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._pubsub: Any | None = None

    @classmethod
    def from_url(cls, url: str, listener: PolicyEventListener, **kwargs: Any) -> "RedisPolicySubscriber":
        return cls(redis.Redis.from_url(url), listener, **kwargs)

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run,
                name="rbacsync-policy-subscriber",
                daemon=self.thread_daemon,
            )
            self._thread.start()
            logger.info("Redis message listener configured for channel: %s", self.channel)

    def stop(self, timeout: float | None = 2.0) -> None:
        with self._lock:
            self._stop_event.set()
            thread = self._thread
        if thread is not None:
            thread.join(timeout=timeout)
            if not thread.is_alive():
                with self._lock:
                    self._thread = None

    @property
    def is_running(self) -> bool:
        t = self._thread
        return bool(t and t.is_alive())

    def dispatch(self, message: Optional[dict]) -> bool:
        """Forward one raw pub/sub message dict to the listener."""
        if not message or message.get("type") not in ("message", "pmessage"):
            return False
        return self.listener.on_message(message.get("data"), _decode(message.get("channel")))

    # -- internals ------------------------------------------------------------

    def _subscribe(self) -> Any:
        pubsub = self.client.pubsub(ignore_subscribe_messages=True)
        pubsub.subscribe(self.channel)
        self._pubsub = pubsub
        return pubsub

    def _close(self) -> None:
        pubsub, self._pubsub = self._pubsub, None
        if pubsub is None:
            return
        try:
            pubsub.close()
        except redis.RedisError:
            logger.debug("Error closing pub/sub connection", exc_info=True)

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                pubsub = self._pubsub or self._subscribe()
                self.dispatch(pubsub.get_message(timeout=self.poll_timeout))
            except redis.RedisError as e:
                logger.warning(
                    "Redis subscription to %s failed (%s); retrying in %.1fs",
                    self.channel,
                    e,
                    self.retry_delay,
                )
                self._close()
                self._stop_event.wait(timeout=self.retry_delay)
        self._close()


def publish_reload(client: Any, version: int, *, channel: str = DEFAULT_CHANNEL) -> int:
    """Broadcast ``reload:<version>`` to every subscribed instance.

    Returns:
        Number of subscribers that received the message.
    """
    message = format_reload_message(version)
    receivers = int(client.publish(channel, message) or 0)
    logger.info("Published %s to %s (%d receivers)", message, channel, receivers)
    return receivers


__all__ = [
    "PolicyEventListener",
    "RedisPolicySubscriber",
    "parse_reload_message",
    "format_reload_message",
    "publish_reload",
]
