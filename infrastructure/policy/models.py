"""Data model for the policy compiler: resources, principals, rules, grants and bindings."""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

from infrastructure.policy.errors import ValidationError


class ResourceKind(str, Enum):
    STORAGE_CONTAINER = "storage-container"
    EXTERNAL_STORAGE = "external-storage"
    KEY = "key"
    COMPUTE_JOB = "compute-job"
    TRIGGER = "trigger"
    PARAMETER = "parameter-store-entry"
    LOG_GROUP = "log-group"


class Effect(str, Enum):
    ALLOW = "Allow"
    DENY = "Deny"


class Decision(str, Enum):
    ALLOW = "ALLOW"
    DENY = "DENY"


class BindingState(str, Enum):
    DISABLED = "DISABLED"
    ENABLED = "ENABLED"


# Abstract actions each resource kind understands
KIND_ACTIONS: Dict[ResourceKind, FrozenSet[str]] = {
    ResourceKind.STORAGE_CONTAINER: frozenset({"list", "read", "write", "delete"}),
    ResourceKind.EXTERNAL_STORAGE: frozenset({"list", "read"}),
    ResourceKind.KEY: frozenset({"encrypt", "decrypt"}),
    ResourceKind.COMPUTE_JOB: frozenset({"invoke"}),
    ResourceKind.TRIGGER: frozenset({"enable", "disable"}),
    ResourceKind.PARAMETER: frozenset({"read", "write"}),
    ResourceKind.LOG_GROUP: frozenset({"create", "write"}),
}

ANY_PRINCIPAL = "*"

ENCRYPTION_KEY_ATTR = "encryption_key"
PRINCIPAL_ATTR = "principal"


def _normalize_actions(actions: Iterable[str]) -> FrozenSet[str]:
    return frozenset(str(a).strip().lower() for a in actions if str(a or "").strip())


def _normalize_patterns(values: Iterable[str]) -> Tuple[str, ...]:
    if isinstance(values, str):
        values = [values]
    return tuple(str(v).strip() for v in values if str(v or "").strip())


@dataclass(frozen=True)
class Principal:
    """An identity requesting actions: a named role or the wildcard any-principal."""

    name: str

    @classmethod
    def any(cls) -> "Principal":
        return cls(ANY_PRINCIPAL)

    @property
    def is_any(self) -> bool:
        return self.name == ANY_PRINCIPAL

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Resource:
    """A provisioned entity, immutable for the duration of an evaluation."""

    resource_id: str
    kind: ResourceKind
    arn: str = ""
    attributes: Dict[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        if not str(self.resource_id or "").strip():
            raise ValidationError("Resource identifier must be provided")
        if not isinstance(self.kind, ResourceKind):
            try:
                object.__setattr__(self, "kind", ResourceKind(self.kind))
            except ValueError as exc:
                raise ValidationError(f"Unknown resource kind: {self.kind!r}") from exc
        if self.kind is ResourceKind.STORAGE_CONTAINER and not self.encryption_key:
            raise ValidationError(f"Storage container '{self.resource_id}' must reference an encryption key")
        if self.kind is ResourceKind.COMPUTE_JOB and not self.principal:
            raise ValidationError(f"Compute job '{self.resource_id}' must declare a principal")

    @property
    def encryption_key(self) -> Optional[str]:
        value = str(self.attributes.get(ENCRYPTION_KEY_ATTR) or "").strip()
        return value or None

    @property
    def principal(self) -> Optional[Principal]:
        value = str(self.attributes.get(PRINCIPAL_ATTR) or "").strip()
        return Principal(value) if value else None

    @property
    def actions(self) -> FrozenSet[str]:
        return KIND_ACTIONS[self.kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.resource_id,
            "kind": self.kind.value,
            "arn": self.arn,
            "attributes": dict(self.attributes),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Resource":
        return cls(
            resource_id=str(data.get("id", "")),
            kind=data.get("kind"),  # type: ignore[arg-type]
            arn=str(data.get("arn", "") or ""),
            attributes=dict(data.get("attributes") or {}),
        )


def _string_equals(value: str, expected: Tuple[str, ...]) -> bool:
    return value in expected


def _string_like(value: str, expected: Tuple[str, ...]) -> bool:
    return any(fnmatch.fnmatchcase(value, pattern) for pattern in expected)


_OPERATORS: Dict[str, Tuple[Callable[[str, Tuple[str, ...]], bool], bool]] = {
    # name -> (predicate, negated)
    "StringEquals": (_string_equals, False),
    "StringNotEquals": (_string_equals, True),
    "StringLike": (_string_like, False),
    "StringNotLike": (_string_like, True),
}

IF_EXISTS = "IfExists"


@dataclass(frozen=True)
class Condition:
    """Attribute matcher evaluated against a request context.

    Negated operators hold when the key is absent. The ``IfExists`` forms hold
    when the key is absent. ``Null`` with value ``true`` holds when the key is
    absent, with ``false`` when it is present.
    """

    operator: str
    key: str
    values: Tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", _normalize_patterns(self.values))
        if not self.key:
            raise ValidationError("Condition key must be provided")
        if not self.values:
            raise ValidationError(f"Condition on '{self.key}' must list at least one value")
        base = self.operator[: -len(IF_EXISTS)] if self.operator.endswith(IF_EXISTS) else self.operator
        if base != "Null" and base not in _OPERATORS:
            raise ValidationError(f"Unsupported condition operator: {self.operator}")
        if base == "Null" and self.operator != "Null":
            raise ValidationError("Null operator has no IfExists form")

    def evaluate(self, context: Mapping[str, Any]) -> bool:
        raw = context.get(self.key)
        present = raw is not None and str(raw) != ""
        if self.operator == "Null":
            want_absent = self.values[0].lower() == "true"
            return not present if want_absent else present

        if_exists = self.operator.endswith(IF_EXISTS)
        base = self.operator[: -len(IF_EXISTS)] if if_exists else self.operator
        predicate, negated = _OPERATORS[base]
        if not present:
            return if_exists or negated
        result = predicate(str(raw), self.values)
        return not result if negated else result

    def to_dict(self) -> Dict[str, Any]:
        return {"operator": self.operator, "key": self.key, "values": list(self.values)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Condition":
        return cls(
            operator=str(data.get("operator", "")),
            key=str(data.get("key", "")),
            values=tuple(data.get("values") or ()),
        )


@dataclass(frozen=True)
class PolicyRule:
    """(principal patterns, resource patterns, actions, effect, conditions)."""

    sid: str
    effect: Effect
    principals: Tuple[str, ...]
    resources: Tuple[str, ...]
    actions: FrozenSet[str]
    conditions: Tuple[Condition, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.effect, Effect):
            try:
                object.__setattr__(self, "effect", Effect(self.effect))
            except ValueError as exc:
                raise ValidationError(f"Rule '{self.sid}' has unknown effect {self.effect!r}") from exc
        object.__setattr__(self, "principals", _normalize_patterns(self.principals))
        object.__setattr__(self, "resources", _normalize_patterns(self.resources))
        object.__setattr__(self, "actions", _normalize_actions(self.actions))
        object.__setattr__(self, "conditions", tuple(self.conditions))

        if not str(self.sid or "").strip():
            raise ValidationError("Rule sid must be provided")
        if not self.actions:
            raise ValidationError(f"Rule '{self.sid}' must list at least one action")
        if not self.principals:
            raise ValidationError(f"Rule '{self.sid}' must list at least one principal pattern")
        if not self.resources:
            raise ValidationError(f"Rule '{self.sid}' must list at least one resource pattern")

    def matches(self, principal: Principal, resource_id: str, action: str) -> bool:
        action = action.lower()
        return (
            any(fnmatch.fnmatchcase(principal.name, p) for p in self.principals)
            and any(fnmatch.fnmatchcase(resource_id, r) for r in self.resources)
            and any(fnmatch.fnmatchcase(action, a) for a in self.actions)
        )

    def conditions_hold(self, context: Mapping[str, Any]) -> bool:
        return all(condition.evaluate(context) for condition in self.conditions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sid": self.sid,
            "effect": self.effect.value,
            "principals": list(self.principals),
            "resources": list(self.resources),
            "actions": sorted(self.actions),
            "conditions": [c.to_dict() for c in self.conditions],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PolicyRule":
        return cls(
            sid=str(data.get("sid", "")),
            effect=data.get("effect"),  # type: ignore[arg-type]
            principals=tuple(data.get("principals") or ()),
            resources=tuple(data.get("resources") or ()),
            actions=frozenset(data.get("actions") or ()),
            conditions=tuple(Condition.from_dict(c) for c in data.get("conditions") or ()),
        )


@dataclass(frozen=True)
class Capability:
    """A declared need of a compute job: actions on one resource, optionally conditioned."""

    resource_id: str
    actions: FrozenSet[str]
    conditions: Tuple[Condition, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "actions", _normalize_actions(self.actions))
        object.__setattr__(self, "conditions", tuple(self.conditions))


@dataclass(frozen=True)
class Grant:
    """A materialized allow rule scoped to one job, one resource and one action set."""

    grant_id: str
    job_id: str
    principal: Principal
    resource_id: str
    actions: FrozenSet[str]
    conditions: Tuple[Condition, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "actions", _normalize_actions(self.actions))
        object.__setattr__(self, "conditions", tuple(self.conditions))
        if not self.actions:
            raise ValidationError(f"Grant '{self.grant_id}' must list at least one action")

    @staticmethod
    def make_id(job_id: str, resource_id: str, actions: Iterable[str]) -> str:
        return f"{job_id}:{resource_id}:{'+'.join(sorted(_normalize_actions(actions)))}"

    @property
    def key(self) -> Tuple[str, FrozenSet[str], Tuple[Condition, ...]]:
        return (self.resource_id, self.actions, self.conditions)

    def as_rule(self) -> PolicyRule:
        return PolicyRule(
            sid=self.grant_id,
            effect=Effect.ALLOW,
            principals=(self.principal.name,),
            resources=(self.resource_id,),
            actions=self.actions,
            conditions=self.conditions,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.grant_id,
            "job": self.job_id,
            "principal": self.principal.name,
            "resource": self.resource_id,
            "actions": sorted(self.actions),
            "conditions": [c.to_dict() for c in self.conditions],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Grant":
        return cls(
            grant_id=str(data.get("id", "")),
            job_id=str(data.get("job", "")),
            principal=Principal(str(data.get("principal", ""))),
            resource_id=str(data.get("resource", "")),
            actions=frozenset(data.get("actions") or ()),
            conditions=tuple(Condition.from_dict(c) for c in data.get("conditions") or ()),
        )


@dataclass(frozen=True)
class Binding:
    """Association of a trigger with a compute job."""

    binding_id: str
    trigger_id: str
    job_id: str
    schedule: str
    state: BindingState = BindingState.DISABLED

    def __post_init__(self) -> None:
        if not isinstance(self.state, BindingState):
            try:
                object.__setattr__(self, "state", BindingState(self.state))
            except ValueError as exc:
                raise ValidationError(f"Binding '{self.binding_id}' has unknown state {self.state!r}") from exc

    @property
    def enabled(self) -> bool:
        return self.state is BindingState.ENABLED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.binding_id,
            "trigger": self.trigger_id,
            "job": self.job_id,
            "schedule": self.schedule,
            "state": self.state.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Binding":
        return cls(
            binding_id=str(data.get("id", "")),
            trigger_id=str(data.get("trigger", "")),
            job_id=str(data.get("job", "")),
            schedule=str(data.get("schedule", "")),
            state=data.get("state", BindingState.DISABLED.value),  # type: ignore[arg-type]
        )
