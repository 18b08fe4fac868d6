from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import MalformedRuleData


class SourceKind(str, Enum):
    """Where rules (or the version token) come from.

    The value is the prefix used in configuration strings.
    """

    DATABASE = "database"
    FILE = "resource"
    HTTP = "api"


@dataclass(frozen=True)
class SourceDescriptor:
    kind: SourceKind
    query: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.query}"


@dataclass(frozen=True)
class VersionSourceDescriptor:
    kind: SourceKind
    query: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.query}"


# Accepted spellings for each PolicyRule field (HTTP sources use camelCase,
# database rows use snake_case).
_FIELD_ALIASES: dict[str, Tuple[str, ...]] = {
    "id": ("id",),
    "role_id": ("roleId", "role_id"),
    "resource_code": ("resourceCode", "resource_code"),
    "action_code": ("actionCode", "action_code"),
}


def _pick(data: Mapping[str, Any], field: str) -> Any:
    for alias in _FIELD_ALIASES[field]:
        if alias in data:
            return data[alias]
    return None


@dataclass(frozen=True)
class PolicyRule:
    """One RBAC grant: role ``role_id`` may perform ``action_code`` on ``resource_code``."""

    id: int
    role_id: int
    resource_code: str
    action_code: str

    def __post_init__(self) -> None:
        # normalize codes; frozen dataclass -> object.__setattr__
        resource = (self.resource_code or "").strip()
        action = (self.action_code or "").strip()
        if not resource or not action:
            raise MalformedRuleData(
                f"Policy rule {self.id!r} has an empty resource or action code"
            )
        object.__setattr__(self, "resource_code", resource)
        object.__setattr__(self, "action_code", action)

    def key(self) -> Tuple[int, str, str]:
        """Identity of the grant, ignoring the row id."""
        return (self.role_id, self.resource_code, self.action_code)

    def as_policy(self) -> Tuple[str, str, str]:
        """Engine representation: ``(subject, object, action)``."""
        return (str(self.role_id), self.resource_code, self.action_code)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, default_id: int = 0) -> "PolicyRule":
        """Build a rule from a row or a decoded JSON object.

        Raises:
            MalformedRuleData: if a field is missing, null or of the wrong type.
        """
        if not isinstance(data, Mapping):
            raise MalformedRuleData(f"Policy rule must be an object, got {type(data).__name__}")

        role_id = _pick(data, "role_id")
        resource = _pick(data, "resource_code")
        action = _pick(data, "action_code")
        if role_id is None or resource is None or action is None:
            raise MalformedRuleData(f"Policy rule is missing required fields: {dict(data)!r}")
        if not isinstance(resource, str) or not isinstance(action, str):
            raise MalformedRuleData(f"Policy rule codes must be strings: {dict(data)!r}")

        raw_id = _pick(data, "id")
        try:
            rule_id = int(raw_id) if raw_id is not None else int(default_id)
            role = _as_int(role_id)
        except (TypeError, ValueError) as e:
            raise MalformedRuleData(f"Policy rule has a non-integer id: {dict(data)!r}") from e
        return cls(id=rule_id, role_id=role, resource_code=resource, action_code=action)


def _as_int(value: Any) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool):
        raise TypeError("boolean is not a valid identifier")
    if isinstance(value, str):
        return int(value.strip())
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{value!r} is not an integer")
    return int(value)


def filter_rules(rules: Iterable[PolicyRule], resources: Optional[Sequence[str]]) -> List[PolicyRule]:
    """Keep only rules whose resource code is in *resources*; empty means keep all."""
    if not resources:
        return list(rules)
    wanted = frozenset(resources)
    return [r for r in rules if r.resource_code in wanted]


def dedupe_rules(rules: Iterable[PolicyRule]) -> List[PolicyRule]:
    """Drop repeated grants, keeping the first occurrence and the original order."""
    seen: set[Tuple[int, str, str]] = set()
    out: List[PolicyRule] = []
    for rule in rules:
        k = rule.key()
        if k in seen:
            continue
        seen.add(k)
        out.append(rule)
    return out


__all__ = [
    "SourceKind",
    "SourceDescriptor",
    "VersionSourceDescriptor",
    "PolicyRule",
    "filter_rules",
    "dedupe_rules",
]
