"""Least-privilege grant planning for compute jobs."""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, List, Sequence, Tuple

from infrastructure.policy.catalog import ResourceCatalog
from infrastructure.policy.errors import ConflictError, ValidationError
from infrastructure.policy.models import Capability, Condition, Grant, Principal, Resource, ResourceKind
from infrastructure.policy.resolver import PolicyResolver
from infrastructure.utils.logger import get_logger


logger = get_logger(__name__)

_GrantKey = Tuple[str, FrozenSet[str]]


def witness_context(conditions: Iterable[Condition]) -> Dict[str, str]:
    """Build the most favourable request a capability's conditions admit.

    Positive equality conditions pin a value; every other condition leaves
    the key unset, so the witness is what a caller honouring the capability
    would actually send.
    """
    context: Dict[str, str] = {}
    for condition in conditions:
        if condition.operator in ("StringEquals", "StringLike") and condition.values:
            context[condition.key] = condition.values[0]
    return context


class GrantPlanner:
    """Turns declared capabilities into the minimal set of grants.

    One grant per distinct (resource, action set); unrelated
    resources are never folded into one grant. Planning is idempotent: a
    capability planned twice yields the already-issued grant.
    """

    def __init__(self, catalog: ResourceCatalog, resolver: PolicyResolver) -> None:
        self.catalog = catalog
        self.resolver = resolver
        self._issued: Dict[str, Dict[_GrantKey, Grant]] = {}
        self._declared: Dict[str, Dict[str, FrozenSet[str]]] = {}

    def _job(self, job_id: str) -> Resource:
        job = self.catalog.get(job_id)
        if job.kind is not ResourceKind.COMPUTE_JOB:
            raise ValidationError(f"'{job_id}' is not a compute job")
        return job

    def _check_actions(self, resource: Resource, capability: Capability) -> None:
        if not capability.actions:
            raise ValidationError(f"Capability on '{resource.resource_id}' must list at least one action")
        unknown = capability.actions - resource.actions
        if unknown:
            raise ValidationError(
                f"Actions {sorted(unknown)} are not defined for {resource.kind.value} '{resource.resource_id}'"
            )

    def _check_conflicts(self, principal: Principal, resource: Resource, capability: Capability) -> None:
        witness = witness_context(capability.conditions)
        for action in sorted(capability.actions):
            for rule in self.resolver.deny_rules_for(principal, resource.resource_id, action):
                if rule.conditions_hold(witness):
                    raise ConflictError(
                        f"Capability '{action}' on '{resource.resource_id}' for {principal} "
                        f"is always blocked by deny rule '{rule.sid}'"
                    )

    @staticmethod
    def _fold_redundant(capabilities: Sequence[Capability]) -> List[Capability]:
        """Drop capabilities subsumed by another on the same resource with the same conditions."""
        merged: Dict[Tuple[str, Tuple[Condition, ...], FrozenSet[str]], Capability] = {}
        for capability in capabilities:
            merged.setdefault((capability.resource_id, capability.conditions, capability.actions), capability)
        unique = list(merged.values())

        kept: List[Capability] = []
        for capability in unique:
            subsumed = any(
                other is not capability
                and other.resource_id == capability.resource_id
                and other.conditions == capability.conditions
                and capability.actions < other.actions
                for other in unique
            )
            if subsumed:
                logger.info(
                    "Folding redundant capability",
                    extra={"resource": capability.resource_id, "action": "+".join(sorted(capability.actions))},
                )
                continue
            kept.append(capability)
        return kept

    def plan(self, job_id: str, capabilities: Sequence[Capability]) -> List[Grant]:
        """Return the grants satisfying ``capabilities`` for ``job_id``.

        Raises NotFound for unknown references, ValidationError for actions
        outside a resource's vocabulary and ConflictError for capabilities an
        existing deny rule always blocks. Checks run against the shared state
        as readers; issued grants are recorded in one exclusive phase.
        """
        job = self._job(job_id)
        principal = job.principal
        if principal is None:
            raise ValidationError(f"Compute job '{job_id}' has no principal")

        with self.catalog.lock.read_locked():
            pending: Dict[_GrantKey, Tuple[Condition, ...]] = {
                key: grant.conditions for key, grant in self._issued.get(job_id, {}).items()
            }
        for capability in capabilities:
            resource = self.catalog.get(capability.resource_id)
            self._check_actions(resource, capability)
            self._check_conflicts(principal, resource, capability)
            key = (capability.resource_id, capability.actions)
            previous = pending.setdefault(key, capability.conditions)
            if previous != capability.conditions:
                raise ConflictError(
                    f"Capability {'+'.join(sorted(capability.actions))} on '{capability.resource_id}' "
                    f"for '{job_id}' is declared twice with different conditions"
                )

        candidates = [
            Grant(
                grant_id=Grant.make_id(job_id, capability.resource_id, capability.actions),
                job_id=job_id,
                principal=principal,
                resource_id=capability.resource_id,
                actions=capability.actions,
                conditions=capability.conditions,
            )
            for capability in self._fold_redundant(capabilities)
        ]
        grants, created = self._record(job_id, candidates)
        for grant in created:
            logger.info("Planned grant", extra={"job": job_id, "resource": grant.resource_id})
        return grants

    def _record(self, job_id: str, candidates: Sequence[Grant]) -> Tuple[List[Grant], List[Grant]]:
        """Store grants under the exclusive lock; an already issued equal-key grant wins."""
        grants: List[Grant] = []
        created: List[Grant] = []
        with self.catalog.lock.write_locked():
            issued = self._issued.setdefault(job_id, {})
            for candidate in candidates:
                key = (candidate.resource_id, candidate.actions)
                existing = issued.get(key)
                if existing is not None and existing.conditions != candidate.conditions:
                    raise ConflictError(
                        f"Grant '{candidate.grant_id}' conflicts with already issued '{existing.grant_id}'"
                    )
                if existing is None:
                    issued[key] = candidate
                    created.append(candidate)
                grants.append(issued[key])
            declared = self._declared.setdefault(job_id, {})
            for grant in grants:
                declared[grant.resource_id] = declared.get(grant.resource_id, frozenset()) | grant.actions
        return grants, created

    def adopt(self, grants: Iterable[Grant]) -> None:
        """Register grants issued elsewhere (a loaded manifest) so re-planning reuses them.

        Each grant is re-checked the way planning would check it: the job and
        resource must exist, its actions must belong to the resource and no
        deny rule may always block it.
        """
        by_job: Dict[str, List[Grant]] = {}
        for grant in grants:
            job = self._job(grant.job_id)
            if job.principal != grant.principal:
                raise ValidationError(f"Grant '{grant.grant_id}' principal does not match job '{grant.job_id}'")
            resource = self.catalog.get(grant.resource_id)
            capability = Capability(grant.resource_id, grant.actions, grant.conditions)
            self._check_actions(resource, capability)
            self._check_conflicts(grant.principal, resource, capability)
            by_job.setdefault(grant.job_id, []).append(grant)

        for job_id, job_grants in by_job.items():
            recorded, _ = self._record(job_id, job_grants)
            for grant, kept in zip(job_grants, recorded):
                if kept != grant:
                    raise ConflictError(f"Grant '{grant.grant_id}' conflicts with already issued '{kept.grant_id}'")

    def issued(self, job_id: str) -> List[Grant]:
        with self.catalog.lock.read_locked():
            return list(self._issued.get(job_id, {}).values())

    def verify_least_privilege(self, job_id: str, grants: Iterable[Grant]) -> None:
        """Raise ValidationError if a grant exceeds what the job declared."""
        with self.catalog.lock.read_locked():
            declared = dict(self._declared.get(job_id, {}))
        for grant in grants:
            if grant.job_id != job_id:
                raise ValidationError(f"Grant '{grant.grant_id}' belongs to '{grant.job_id}', not '{job_id}'")
            allowed = declared.get(grant.resource_id, frozenset())
            excess = grant.actions - allowed
            if excess:
                raise ValidationError(
                    f"Grant '{grant.grant_id}' exceeds declared capabilities by {sorted(excess)}"
                )
