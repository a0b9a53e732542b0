"""Allow/deny resolution over a layered rule set.

Resolution is a pure function of the rule set and the request:

* any matching DENY rule whose conditions hold -> DENY
* otherwise any matching ALLOW rule whose conditions hold -> ALLOW
* otherwise DENY (default deny)

The combinator works on the set of matching rules, so the storage order of
rules never changes an outcome.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from infrastructure.policy.catalog import ResourceCatalog
from infrastructure.policy.errors import NotFound, ValidationError
from infrastructure.policy.models import Decision, Effect, Grant, PolicyRule, Principal
from infrastructure.utils.logger import get_logger


logger = get_logger(__name__)

PrincipalLike = Union[Principal, str]


@dataclass(frozen=True)
class Evaluation:
    """Decision plus the ids of the rules that produced it."""

    decision: Decision
    matched_allows: Tuple[str, ...]
    matched_denies: Tuple[str, ...]

    @property
    def allowed(self) -> bool:
        return self.decision is Decision.ALLOW

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decision": self.decision.value,
            "matched_allows": list(self.matched_allows),
            "matched_denies": list(self.matched_denies),
        }


def combine(effects: Iterable[Effect]) -> Decision:
    """Explicit deny > explicit allow > default deny."""
    seen = set(effects)
    if Effect.DENY in seen:
        return Decision.DENY
    if Effect.ALLOW in seen:
        return Decision.ALLOW
    return Decision.DENY


def _as_principal(principal: PrincipalLike) -> Principal:
    return principal if isinstance(principal, Principal) else Principal(str(principal))


class PolicyResolver:
    """Evaluates (principal, resource, action, context) requests."""

    def __init__(self, catalog: ResourceCatalog, rules: Iterable[PolicyRule] = ()) -> None:
        self.catalog = catalog
        self._lock = catalog.lock
        self._rules: Dict[str, PolicyRule] = {}
        self._grants: Dict[str, Grant] = {}
        self.add_rules(rules)

    # -- mutation (exclusive phase) -----------------------------------------

    def add_rules(self, rules: Iterable[PolicyRule]) -> None:
        incoming = list(rules)
        with self._lock.write_locked():
            for rule in incoming:
                existing = self._rules.get(rule.sid)
                if existing is not None and existing != rule:
                    raise ValidationError(f"Rule sid '{rule.sid}' already defined with different content")
                self._rules[rule.sid] = rule

    def add_grants(self, grants: Iterable[Grant]) -> None:
        incoming = list(grants)
        with self._lock.write_locked():
            for grant in incoming:
                self._grants[grant.grant_id] = grant

    def remove_grant(self, grant_id: str) -> Grant:
        with self._lock.write_locked():
            try:
                return self._grants.pop(grant_id)
            except KeyError:
                raise NotFound(f"Unknown grant: {grant_id}") from None

    # -- read side ----------------------------------------------------------

    @property
    def rules(self) -> List[PolicyRule]:
        with self._lock.read_locked():
            return list(self._rules.values())

    @property
    def grants(self) -> List[Grant]:
        with self._lock.read_locked():
            return list(self._grants.values())

    def grants_for(self, job_id: str) -> List[Grant]:
        return [g for g in self.grants if g.job_id == job_id]

    def deny_rules_for(self, principal: PrincipalLike, resource_id: str, action: str) -> List[PolicyRule]:
        """Return DENY rules whose patterns match the request, regardless of conditions."""
        who = _as_principal(principal)
        return [
            rule
            for rule in self.rules
            if rule.effect is Effect.DENY and rule.matches(who, resource_id, action)
        ]

    def explain(
        self,
        principal: PrincipalLike,
        resource_id: str,
        action: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> Evaluation:
        who = _as_principal(principal)
        ctx: Mapping[str, Any] = context or {}
        with self._lock.read_locked():
            if resource_id not in self.catalog:
                raise NotFound(f"Unknown resource: {resource_id}")
            candidates = list(self._rules.values()) + [g.as_rule() for g in self._grants.values()]

        applicable = [
            rule for rule in candidates if rule.matches(who, resource_id, action) and rule.conditions_hold(ctx)
        ]
        decision = combine(rule.effect for rule in applicable)
        evaluation = Evaluation(
            decision=decision,
            matched_allows=tuple(sorted(r.sid for r in applicable if r.effect is Effect.ALLOW)),
            matched_denies=tuple(sorted(r.sid for r in applicable if r.effect is Effect.DENY)),
        )
        logger.debug(
            "Evaluated request",
            extra={"principal": who, "resource": resource_id, "action": action, "decision": decision.value},
        )
        return evaluation

    def evaluate(
        self,
        principal: PrincipalLike,
        resource_id: str,
        action: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> Decision:
        return self.explain(principal, resource_id, action, context).decision
