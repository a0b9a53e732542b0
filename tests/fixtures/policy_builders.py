"""Small catalogs and rule sets shared by the policy unit tests."""

from typing import Callable, List, Optional, Tuple

import pytest

from infrastructure.policy.catalog import ResourceCatalog
from infrastructure.policy.encryption import EncryptionGate
from infrastructure.policy.grants import GrantPlanner
from infrastructure.policy.models import (
    Capability,
    Condition,
    Effect,
    PolicyRule,
    Resource,
    ResourceKind,
)
from infrastructure.policy.resolver import PolicyResolver
from infrastructure.policy.triggers import TriggerBinder


KEY_ARN = "arn:aws:kms:us-east-1:111122223333:alias/k1"


def build_catalog() -> ResourceCatalog:
    """k1 key, c1 container protected by k1, j1 job as p1, t1 trigger."""
    catalog = ResourceCatalog()
    catalog.add(Resource("k1", ResourceKind.KEY, arn=KEY_ARN))
    catalog.add(Resource("c1", ResourceKind.STORAGE_CONTAINER, attributes={"encryption_key": "k1"}))
    catalog.add(
        Resource("j1", ResourceKind.COMPUTE_JOB, attributes={"principal": "p1", "job_type": "function"})
    )
    catalog.add(Resource("t1", ResourceKind.TRIGGER, attributes={"schedule": "rate(5 minutes)", "job": "j1"}))
    return catalog


def allow_rule(
    sid: str,
    principals: Tuple[str, ...] = ("p1",),
    resources: Tuple[str, ...] = ("c1",),
    actions: Tuple[str, ...] = ("read",),
    conditions: Tuple[Condition, ...] = (),
) -> PolicyRule:
    return PolicyRule(sid, Effect.ALLOW, principals, resources, frozenset(actions), conditions)


def deny_rule(
    sid: str,
    principals: Tuple[str, ...] = ("p1",),
    resources: Tuple[str, ...] = ("c1",),
    actions: Tuple[str, ...] = ("read",),
    conditions: Tuple[Condition, ...] = (),
) -> PolicyRule:
    return PolicyRule(sid, Effect.DENY, principals, resources, frozenset(actions), conditions)


class PolicyHarness:
    """Catalog plus gate-protected resolver, planner and binder."""

    def __init__(self, invoker: Optional[Callable] = None) -> None:
        self.catalog = build_catalog()
        self.gate = EncryptionGate(self.catalog)
        self.resolver = PolicyResolver(self.catalog, self.gate.rules())
        self.planner = GrantPlanner(self.catalog, self.resolver)
        self.invocations: List[Tuple[str, str]] = []
        self.binder = TriggerBinder(
            self.catalog,
            self.resolver,
            invoker=invoker or (lambda job, binding: self.invocations.append((job.resource_id, binding.binding_id))),
        )

    def grant(self, *capabilities: Capability, job_id: str = "j1"):
        grants = self.planner.plan(job_id, list(capabilities))
        self.resolver.add_grants(grants)
        return grants


@pytest.fixture
def catalog() -> ResourceCatalog:
    return build_catalog()


@pytest.fixture
def harness() -> PolicyHarness:
    return PolicyHarness()
