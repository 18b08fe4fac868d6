from __future__ import annotations

import logging
import threading
import time
from typing import Optional

from .config import MIN_POLL_INTERVAL
from .core.atomic import AtomicVersion
from .core.ports import PolicyEnforcer, VersionChecker
from .loader import PolicyLoader

logger = logging.getLogger("rbacsync.polling")


class VersionPollingService:
    """
    Reload policies when the source's version token changes.

    Lifecycle:
      - ``initialize()`` enables polling once, if it is switched on, the
        interval is at least ``min_interval`` seconds, a version checker is
        configured and that checker reports itself available. There is no
        way back to disabled at runtime.
      - ``load_initial_version()`` records the current version as the
        baseline without reloading.
      - ``check_version_and_reload()`` is one tick: compare, reload on
        mismatch, then store the new version. A failed reload propagates and
        leaves the cached version alone, so the next tick retries.
      - ``start()``/``stop()`` drive ticks from a background thread with a
        fixed delay between the end of one tick and the start of the next;
        ticks never overlap.

    The cached version is an ``AtomicVersion`` shared with the pub/sub
    listener, which overwrites it through ``set_cached_version``.
    """

    def __init__(
        self,
        loader: PolicyLoader,
        enforcer: PolicyEnforcer,
        checker: Optional[VersionChecker],
        *,
        enabled: bool = False,
        interval: Optional[float] = None,
        min_interval: float = MIN_POLL_INTERVAL,
        thread_daemon: bool = True,
    ) -> None:
        self.loader = loader
        self.enforcer = enforcer
        self.checker = checker
        self.enabled = bool(enabled)
        self.interval = interval
        self.min_interval = float(min_interval)
        self.thread_daemon = bool(thread_daemon)

        self._cached_version = AtomicVersion(0)
        self._polling_enabled = False
        self._last_check_at: float | None = None
        self._last_error: Exception | None = None

        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # --------------------------------------------------------------------- #
    # Lifecycle
    # --------------------------------------------------------------------- #

    def initialize(self) -> bool:
        """Validate configuration and arm polling.

        Returns:
            True if polling is enabled after the call.
        """
        with self._lock:
            if self._polling_enabled:
                return True

            logger.info("Initializing version polling service...")
            if not self.enabled:
                logger.info("Version polling is disabled")
                return False
            if self.interval is None:
                logger.info("Polling interval is not configured, polling disabled")
                return False
            if self.interval < self.min_interval:
                logger.error(
                    "Polling interval %.1fs is below the minimum of %.1fs, polling disabled",
                    self.interval,
                    self.min_interval,
                )
                return False
            if self.checker is None:
                logger.warning("No version source configured, polling disabled")
                return False
            if not self.checker.is_available():
                logger.warning("Version checker is not available, polling disabled: %s", self.checker.description())
                return False

            self._polling_enabled = True
            logger.info(
                "Version polling enabled every %.1fs using checker: %s",
                self.interval,
                self.checker.description(),
            )
            return True

    def load_initial_version(self) -> int:
        """Store the current version as baseline; no reload is triggered."""
        if not self._polling_enabled or self.checker is None:
            return self._cached_version.get()
        version = self.checker.current_version()
        baseline = version if version is not None else 0
        self._cached_version.set(baseline)
        logger.info("Loaded initial version: %d", baseline)
        return baseline

    def check_version_and_reload(self) -> bool:
        """Run one polling tick.

        Returns:
            True if a version change was detected and policies were reloaded.

        Raises:
            Whatever ``PolicyLoader.load_policies`` raises; the cached
            version is not updated in that case.
        """
        if not self._polling_enabled or self.checker is None:
            return False

        self._last_check_at = time.time()
        current = self.checker.current_version()
        if current is None:
            logger.debug("Unable to retrieve current version, skipping this tick")
            return False

        cached = self._cached_version.get()
        if current == cached:
            logger.debug("No version change detected, current version: %d", current)
            return False

        logger.info("Version change detected: %d -> %d", cached, current)
        self.loader.load_policies(self.enforcer)
        self._cached_version.set(current)
        logger.info("Policy reload completed, version updated to: %d", current)
        return True

    def start(self) -> None:
        """Start the background polling thread (no-op unless initialized)."""
        with self._lock:
            if not self._polling_enabled:
                logger.debug("Polling not enabled; background thread not started")
                return
            if self._thread and self._thread.is_alive():
                return
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run_loop,
                args=(float(self.interval or self.min_interval),),
                name="rbacsync-version-poller",
                daemon=self.thread_daemon,
            )
            self._thread.start()

    def stop(self, timeout: float | None = 1.0) -> None:
        """Signal the polling thread to stop and optionally wait for it."""
        with self._lock:
            if not self._thread:
                return
            self._stop_event.set()
            self._thread.join(timeout=timeout)
            if not self._thread.is_alive():
                self._thread = None

    # --------------------------------------------------------------------- #
    # Shared version state
    # --------------------------------------------------------------------- #

    def set_cached_version(self, version: int) -> None:
        """Overwrite the cached version without reloading."""
        self._cached_version.set(version)
        logger.info("Cached version updated to: %d", version)

    @property
    def cached_version(self) -> int:
        return self._cached_version.get()

    @property
    def polling_enabled(self) -> bool:
        return self._polling_enabled

    @property
    def is_running(self) -> bool:
        t = self._thread
        return bool(t and t.is_alive())

    @property
    def last_check_at(self) -> float | None:
        return self._last_check_at

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    # --------------------------------------------------------------------- #
    # Internals
    # --------------------------------------------------------------------- #

    def _run_loop(self, interval: float) -> None:
        while not self._stop_event.wait(timeout=interval):
            try:
                self.check_version_and_reload()
                self._last_error = None
            except Exception as e:
                # keep polling; the unchanged cached version makes the next tick retry
                self._last_error = e
                logger.exception("Error during version checking and policy reload")


__all__ = ["VersionPollingService"]
