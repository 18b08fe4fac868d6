from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.engine import Engine

from .config import MIN_POLL_INTERVAL, Settings
from .core.enforcer import InMemoryEnforcer
from .core.errors import ConfigError
from .core.model import SourceKind, VersionSourceDescriptor
from .core.ports import MetricsSink, PolicyEnforcer, RuleLoader, VersionChecker
from .events import PolicyEventListener, RedisPolicySubscriber
from .loader import PolicyLoader
from .polling import VersionPollingService
from .source import parse_source, parse_version_source
from .store.file_store import CSVRuleLoader
from .store.http_store import HTTPRuleLoader
from .store.sql_store import SQLRuleLoader, make_engine
from .store.version import DEFAULT_VERSION_QUERY, build_version_checker

logger = logging.getLogger("rbacsync.runtime")


def resolve_version_source(settings: Settings) -> Optional[VersionSourceDescriptor]:
    """Work out where the version token lives.

    An explicit ``version_source`` wins. Otherwise it follows the policy
    source: a database source uses the default version query, an API source
    uses ``polling.version_api_endpoint``; a static file has no version.
    """
    if settings.version_source:
        return parse_version_source(settings.version_source)

    descriptor = parse_source(settings.policy_source)
    if descriptor.kind is SourceKind.DATABASE:
        return VersionSourceDescriptor(kind=SourceKind.DATABASE, query=DEFAULT_VERSION_QUERY)
    if descriptor.kind is SourceKind.HTTP:
        endpoint = settings.polling.version_api_endpoint
        if not endpoint:
            logger.error("Version API endpoint not configured for API policy source")
            return None
        return parse_version_source(f"{SourceKind.HTTP.value}:{endpoint}")
    logger.info("Policy source is a static file, version polling not applicable")
    return None


class PolicySync:
    """
    Keep an authorization engine in step with the configured rule source.

    ``start()`` performs the startup sequence:
      1. synchronous initial load; any failure propagates;
      2. polling validation, baseline version read and polling thread start;
      3. pub/sub subscription, if a Redis URL is configured.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        enforcer: Optional[PolicyEnforcer] = None,
        engine: Optional[Engine] = None,
        redis_client: Any | None = None,
        metrics: MetricsSink | None = None,
        loaders: Optional[Dict[SourceKind, RuleLoader]] = None,
        checker: Optional[VersionChecker] = None,
        min_poll_interval: float = MIN_POLL_INTERVAL,
    ) -> None:
        self.settings = settings
        self.enforcer: PolicyEnforcer = enforcer if enforcer is not None else InMemoryEnforcer()

        # fail fast on an unparsable source
        descriptor = parse_source(settings.policy_source)

        self._engine = engine
        if self._engine is None and settings.database_url:
            self._engine = make_engine(settings.database_url)

        self.loader = PolicyLoader(
            lambda: self.settings.policy_source,
            loaders if loaders is not None else self._default_loaders(descriptor.kind),
            resources=settings.resources,
            metrics=metrics,
        )

        if checker is None and settings.polling.enabled:
            checker = self._build_checker()
        self.polling = VersionPollingService(
            self.loader,
            self.enforcer,
            checker,
            enabled=settings.polling.enabled,
            interval=settings.polling.interval,
            min_interval=min_poll_interval,
        )
        self.listener = PolicyEventListener(self.polling, self.loader, self.enforcer)

        self.subscriber: Optional[RedisPolicySubscriber] = None
        if redis_client is not None:
            self.subscriber = RedisPolicySubscriber(redis_client, self.listener, channel=settings.redis.channel)
        elif settings.redis.url:
            self.subscriber = RedisPolicySubscriber.from_url(
                settings.redis.url, self.listener, channel=settings.redis.channel
            )

    # --------------------------------------------------------------------- #
    # Lifecycle
    # --------------------------------------------------------------------- #

    def start(self) -> None:
        logger.info("Loading initial policies synchronously...")
        self.loader.load_policies(self.enforcer)

        if self.polling.initialize():
            self.polling.load_initial_version()
            self.polling.start()

        if self.subscriber is not None:
            self.subscriber.start()
        logger.info("Policy synchronization started")

    def stop(self) -> None:
        if self.subscriber is not None:
            self.subscriber.stop()
        self.polling.stop()
        logger.info("Policy synchronization stopped")

    def reload(self) -> int:
        """Manual reload; failures propagate to the caller."""
        return self.loader.load_policies(self.enforcer)

    def __enter__(self) -> "PolicySync":
        self.start()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.stop()

    # --------------------------------------------------------------------- #
    # Wiring
    # --------------------------------------------------------------------- #

    def _require_engine(self) -> Engine:
        if self._engine is None:
            raise ConfigError("database_url is required for database sources")
        return self._engine

    def _default_loaders(self, kind: SourceKind) -> Dict[SourceKind, RuleLoader]:
        http = self.settings.http
        loaders: Dict[SourceKind, RuleLoader] = {
            SourceKind.FILE: CSVRuleLoader(base_dir=self.settings.csv_base_dir),
            SourceKind.HTTP: HTTPRuleLoader(headers=http.headers, timeout=http.timeout),
        }
        if kind is SourceKind.DATABASE or self._engine is not None:
            loaders[SourceKind.DATABASE] = SQLRuleLoader(self._require_engine())
        return loaders

    def _build_checker(self) -> Optional[VersionChecker]:
        descriptor = resolve_version_source(self.settings)
        if descriptor is None:
            return None
        engine = self._require_engine() if descriptor.kind is SourceKind.DATABASE else None
        return build_version_checker(
            descriptor,
            engine=engine,
            version_code=self.settings.polling.version_code,
            headers=self.settings.http.headers,
            timeout=self.settings.http.timeout,
        )


__all__ = ["PolicySync", "resolve_version_source"]
