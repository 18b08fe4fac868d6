from __future__ import annotations

import logging
import os
from importlib import resources as importlib_resources
from typing import Iterable, List, Optional, Sequence

from ..core.errors import SourceUnavailable
from ..core.model import PolicyRule, filter_rules

logger = logging.getLogger("rbacsync.store.file")

PACKAGE_PREFIX = "package:"


class CSVRuleLoader:
    """
    Rule loader for Casbin-style CSV policy files.

    Only ``p,<roleId>,<resourceCode>,<actionCode>`` rows are read; blank
    lines and ``#`` comments are skipped. A row whose role id is not an
    integer is logged and skipped instead of failing the whole load. The
    rule id is the 1-based line number.

    The query is either a filesystem path (relative paths resolve against
    ``base_dir``, default: the working directory) or a packaged resource
    written as ``package:<dotted.package>/<relative/path.csv>``.
    """

    def __init__(self, *, base_dir: Optional[str] = None, encoding: str = "utf-8") -> None:
        self.base_dir = base_dir
        self.encoding = encoding

    # --- RuleLoader ----------------------------------------------------------

    def load(self, query: str, resources: Sequence[str] = ()) -> List[PolicyRule]:
        logger.info("Loading policy rules from resource: %s", query)
        try:
            lines = self._read_lines(query)
        except (OSError, ModuleNotFoundError, ValueError) as e:
            logger.error("Failed to read policy resource: %s", query)
            raise SourceUnavailable(f"Resource policy loading failed: {query}") from e

        rules = filter_rules(self.parse_lines(lines, source=query), resources)
        logger.info("Loaded %d policy rules from resource: %s", len(rules), query)
        return rules

    # --- parsing -------------------------------------------------------------

    @staticmethod
    def parse_lines(lines: Iterable[str], *, source: str = "<memory>") -> List[PolicyRule]:
        rules: List[PolicyRule] = []
        for lineno, raw in enumerate(lines, start=1):
            line = raw.strip()
            if not line or line.startswith("#"):
                continue

            parts = [p.strip() for p in line.split(",")]
            if len(parts) < 4 or parts[0] != "p":
                continue

            try:
                role_id = int(parts[1])
            except ValueError:
                logger.warning("Invalid role ID format at %s line %d: %s", source, lineno, line)
                continue

            if not parts[2] or not parts[3]:
                logger.warning("Empty resource or action at %s line %d: %s", source, lineno, line)
                continue

            rules.append(
                PolicyRule(
                    id=lineno,
                    role_id=role_id,
                    resource_code=parts[2],
                    action_code=parts[3],
                )
            )
        return rules

    # --- IO ------------------------------------------------------------------

    def _read_lines(self, query: str) -> List[str]:
        if query.startswith(PACKAGE_PREFIX):
            package, _, name = query[len(PACKAGE_PREFIX) :].partition("/")
            if not package or not name:
                raise ValueError(f"Expected package:<package>/<path>, got {query!r}")
            ref = importlib_resources.files(package).joinpath(name)
            return ref.read_text(encoding=self.encoding).splitlines()

        path = query
        if not os.path.isabs(path) and self.base_dir:
            path = os.path.join(self.base_dir, path)
        with open(path, "r", encoding=self.encoding) as f:
            return [line for line in f]


__all__ = ["CSVRuleLoader", "PACKAGE_PREFIX"]
