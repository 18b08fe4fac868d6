from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Union

from .core.errors import PolicyApplyError
from .core.model import PolicyRule, SourceKind, dedupe_rules
from .core.ports import MetricsSink, PolicyEnforcer, RuleLoader
from .logging.context import clear_current_reload_id, gen_reload_id, set_current_reload_id
from .source import parse_source

logger = logging.getLogger("rbacsync.loader")

SourceProvider = Union[str, Callable[[], Optional[str]]]


class PolicyLoader:
    """
    Fetch the configured rule set and swap it into an authorization engine.

    Steps of one reload:
      1. parse the policy source string (fresh on every call);
      2. fetch rules with the loader registered for the source kind;
      3. drop duplicate grants (first occurrence wins);
      4. clear the engine and insert the batch.

    Fetching finishes before the engine is touched, so the window in which
    the engine holds no rules lasts only as long as the local insert. If the
    insert fails the engine is left empty (every check denied) and
    ``PolicyApplyError`` is raised; stale rules are never kept.

    Reloads are serialized: the polling thread and the pub/sub listener may
    both call ``load_policies`` but their clear/insert steps never
    interleave.
    """

    def __init__(
        self,
        source: SourceProvider,
        loaders: Mapping[SourceKind, RuleLoader],
        *,
        resources: Sequence[str] = (),
        metrics: MetricsSink | None = None,
    ) -> None:
        self._source = source
        self.loaders: Dict[SourceKind, RuleLoader] = dict(loaders)
        self.resources: List[str] = [r.strip() for r in resources if r and r.strip()]
        self.metrics = metrics

        self._lock = threading.RLock()
        self._last_loaded_count: Optional[int] = None
        self._last_loaded_at: Optional[float] = None

    # --------------------------------------------------------------------- #
    # Public API
    # --------------------------------------------------------------------- #

    @property
    def policy_source(self) -> Optional[str]:
        return self._source() if callable(self._source) else self._source

    def load_rules(self) -> List[PolicyRule]:
        """Parse the source and fetch the rules without touching any engine."""
        descriptor = parse_source(self.policy_source)
        loader = self.loaders.get(descriptor.kind)
        if loader is None:
            raise ValueError(f"No rule loader registered for source type: {descriptor.kind.value}")

        logger.debug(
            "Loading policy rules - type: %s, query: %s, resources: %s",
            descriptor.kind.value,
            descriptor.query,
            self.resources,
        )
        rules = loader.load(descriptor.query, self.resources)
        unique = dedupe_rules(rules)
        if len(unique) != len(rules):
            logger.info("Dropped %d duplicate policy rules", len(rules) - len(unique))
        return unique

    def load_policies(self, enforcer: PolicyEnforcer) -> int:
        """Replace the engine's rules with the current source contents.

        Returns:
            Number of rules now held by the engine.

        Raises:
            SourceConfigError: the policy source string is invalid.
            PolicyLoadError: the source could not be read; the engine is untouched.
            PolicyApplyError: the engine rejected the batch; the engine is empty.
        """
        token = set_current_reload_id(gen_reload_id())
        started = time.perf_counter()
        outcome = "error"
        try:
            with self._lock:
                logger.info(
                    "Starting policy loading with source: %s and resources: %s",
                    self.policy_source,
                    self.resources,
                )
                rules = self.load_rules()
                outcome = "apply_error"
                self._apply(enforcer, rules)
                outcome = "success"

                self._last_loaded_count = len(rules)
                self._last_loaded_at = time.time()
                logger.info("Policy loading completed - %d policies loaded", len(rules))
                return len(rules)
        except Exception:
            logger.error("Failed to load policies from source: %s", self.policy_source)
            raise
        finally:
            self._report(outcome, time.perf_counter() - started)
            clear_current_reload_id(token)

    # --------------------------------------------------------------------- #
    # Diagnostics
    # --------------------------------------------------------------------- #

    @property
    def last_loaded_count(self) -> Optional[int]:
        with self._lock:
            return self._last_loaded_count

    @property
    def last_loaded_at(self) -> Optional[float]:
        with self._lock:
            return self._last_loaded_at

    # --------------------------------------------------------------------- #
    # Internals
    # --------------------------------------------------------------------- #

    def _apply(self, enforcer: PolicyEnforcer, rules: List[PolicyRule]) -> None:
        try:
            enforcer.clear_rules()
        except Exception as e:
            raise PolicyApplyError(f"Failed to clear policies in enforcer: {e}") from e

        if not rules:
            logger.info("No policies to load")
            return

        try:
            added = enforcer.add_rules(rules)
        except Exception as e:
            self._fail_closed(enforcer)
            raise PolicyApplyError(f"Policy loading into enforcer failed: {e}") from e

        if added:
            logger.debug("Loaded %d policies into enforcer", len(rules))
        else:
            logger.warning("Some policies may have failed to load or already existed")

    @staticmethod
    def _fail_closed(enforcer: PolicyEnforcer) -> None:
        try:
            enforcer.clear_rules()
        except Exception:
            logger.exception("Could not clear enforcer after a failed insert")
        logger.error("Enforcer left without policies; all checks will be denied until the next reload")

    def _report(self, outcome: str, elapsed: float) -> None:
        if self.metrics is None:
            return
        try:
            self.metrics.inc("rbacsync_reloads_total", {"outcome": outcome})
            self.metrics.observe("rbacsync_reload_seconds", elapsed, {"outcome": outcome})
        except Exception:
            logger.debug("metrics sink raised", exc_info=True)


__all__ = ["PolicyLoader"]
