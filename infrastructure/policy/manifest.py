"""Serialized policy manifest: resources, rules, grants and bindings as JSON.

The manifest is the declarative input handed to the provisioning engine and
is sufficient to rebuild the resolver state. Round-tripping is lossless.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from infrastructure.policy.errors import PolicyError, ValidationError
from infrastructure.policy.models import Binding, Grant, PolicyRule, Resource


FORMAT_VERSION = 1


@dataclass
class PolicyState:
    """Everything needed to reconstruct a compiled policy."""

    variant: str
    resources: List[Resource] = field(default_factory=list)
    rules: List[PolicyRule] = field(default_factory=list)
    grants: List[Grant] = field(default_factory=list)
    bindings: List[Binding] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format_version": FORMAT_VERSION,
            "variant": self.variant,
            "metadata": dict(self.metadata),
            "resources": [r.to_dict() for r in sorted(self.resources, key=lambda r: r.resource_id)],
            "rules": [r.to_dict() for r in sorted(self.rules, key=lambda r: r.sid)],
            "grants": [g.to_dict() for g in sorted(self.grants, key=lambda g: g.grant_id)],
            "bindings": [b.to_dict() for b in sorted(self.bindings, key=lambda b: b.binding_id)],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PolicyState":
        if not isinstance(data, Mapping):
            raise ValidationError("Manifest must be a JSON object")
        version = data.get("format_version")
        if version != FORMAT_VERSION:
            raise ValidationError(f"Unsupported manifest format_version: {version!r}")
        try:
            return cls(
                variant=str(data.get("variant", "")),
                metadata=dict(data.get("metadata") or {}),
                resources=[Resource.from_dict(r) for r in data.get("resources") or []],
                rules=[PolicyRule.from_dict(r) for r in data.get("rules") or []],
                grants=[Grant.from_dict(g) for g in data.get("grants") or []],
                bindings=[Binding.from_dict(b) for b in data.get("bindings") or []],
            )
        except PolicyError:
            raise
        except (TypeError, AttributeError) as exc:
            raise ValidationError(f"Malformed manifest: {exc}") from exc


def dumps(state: PolicyState, *, indent: Optional[int] = 2) -> str:
    return json.dumps(state.to_dict(), indent=indent, sort_keys=True, ensure_ascii=False)


def loads(text: str) -> PolicyState:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Manifest is not valid JSON: {exc}") from exc
    return PolicyState.from_dict(data)


def write(state: PolicyState, path: Union[str, Path]) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(dumps(state) + "\n", encoding="utf-8")
    return target


def read(path: Union[str, Path]) -> PolicyState:
    return loads(Path(path).read_text(encoding="utf-8"))
