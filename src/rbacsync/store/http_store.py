from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

from ..core.errors import MalformedRuleData, PolicyLoadError, SourceUnavailable
from ..core.model import PolicyRule, filter_rules

logger = logging.getLogger("rbacsync.store.http")

RESOURCE_PARAM = "resourceCode"


def _import_requests() -> Any:
    try:
        import requests  # type: ignore[import-untyped]
    except ImportError as e:
        raise RuntimeError("requests is required for HTTP sources. pip install requests") from e
    return requests


def _body_text(resp: Any) -> str:
    text = getattr(resp, "text", None)
    if isinstance(text, str):
        return text
    content = getattr(resp, "content", None)
    if isinstance(content, (bytes, bytearray)):
        return content.decode("utf-8", errors="replace")
    return ""


def fetch_envelope(url: str, *, headers: Optional[Dict[str, str]] = None, timeout: float = 5.0) -> Any:
    """GET *url* and return the ``data`` member of a ``{"data": ...}`` envelope.

    Returns None for an empty body or an absent/null ``data``.

    Raises:
        SourceUnavailable: transport failure or non-2xx status.
        MalformedRuleData: body is not JSON or not a JSON object.
    """
    requests = _import_requests()
    try:
        resp = requests.get(url, headers=dict(headers or {}), timeout=timeout)
        resp.raise_for_status()
    except Exception as e:
        raise SourceUnavailable(f"HTTP request to {url} failed: {e}") from e

    body = _body_text(resp)
    if not body.strip():
        logger.warning("Received empty response from %s", url)
        return None

    try:
        payload = json.loads(body)
    except ValueError as e:
        raise MalformedRuleData(f"Invalid JSON in response from {url}") from e
    if not isinstance(payload, dict):
        raise MalformedRuleData(
            f"Expected a JSON object envelope from {url}, got {type(payload).__name__}"
        )
    return payload.get("data")


def probe_endpoint(url: str, *, headers: Optional[Dict[str, str]] = None, timeout: float = 5.0) -> bool:
    """True if *url* answers 2xx with a non-empty body."""
    requests = _import_requests()
    try:
        resp = requests.get(url, headers=dict(headers or {}), timeout=timeout)
        resp.raise_for_status()
    except Exception as e:
        logger.debug("Endpoint probe failed for %s: %s", url, e)
        return False
    return bool(_body_text(resp).strip())


def build_url(base_url: str, resources: Sequence[str]) -> str:
    """Append the comma-joined resource filter as a query parameter."""
    if not resources:
        return base_url
    value = quote(",".join(resources), safe=",")
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{RESOURCE_PARAM}={value}"


class HTTPRuleLoader:
    """
    Rule loader for an HTTP endpoint answering ``{"data": [PolicyRule, ...]}``.

    - The resource filter is sent as ``?resourceCode=a,b`` and also applied
      locally.
    - Entries with a null role/resource/action or a blank code are dropped
      with a warning; the load as a whole fails only when the call or the
      envelope is broken.
    - ``timeout`` bounds every request.
    """

    def __init__(self, *, headers: Optional[Dict[str, str]] = None, timeout: float = 5.0) -> None:
        self.headers = dict(headers or {})
        self.timeout = float(timeout)

    def load(self, query: str, resources: Sequence[str] = ()) -> List[PolicyRule]:
        url = build_url(query, resources)
        logger.info("Loading policy rules from API: %s", url)

        data = fetch_envelope(url, headers=self.headers, timeout=self.timeout)
        if data is None:
            logger.warning("API response data field is null: %s", url)
            return []
        if not isinstance(data, list):
            raise MalformedRuleData(
                f"Expected a list of policy rules from {url}, got {type(data).__name__}"
            )

        rules: List[PolicyRule] = []
        for index, item in enumerate(data, start=1):
            try:
                rules.append(PolicyRule.from_mapping(item, default_id=index))
            except PolicyLoadError as e:
                logger.warning("Skipping invalid policy rule %r: %s", item, e)

        rules = filter_rules(rules, resources)
        logger.info("Loaded %d policy rules from API", len(rules))
        return rules


__all__ = ["HTTPRuleLoader", "fetch_envelope", "probe_endpoint", "build_url", "RESOURCE_PARAM"]
