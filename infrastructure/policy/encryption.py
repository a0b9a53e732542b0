"""Encryption enforcement for protected storage containers."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

from infrastructure.policy.catalog import ResourceCatalog
from infrastructure.policy.errors import ValidationError
from infrastructure.policy.models import (
    ANY_PRINCIPAL,
    Condition,
    Effect,
    PolicyRule,
    Resource,
    ResourceKind,
)


ENCRYPTION_HEADER = "s3:x-amz-server-side-encryption"
KEY_ID_HEADER = "s3:x-amz-server-side-encryption-aws-kms-key-id"

APPROVED_MODE = "aws:kms"
CLEARTEXT_MODE = "AES256"

WRITE_ACTION = "write"

DENY_MODE_SUFFIX = "DenyUnapprovedEncryptionMode"
DENY_KEY_SUFFIX = "DenyUnapprovedEncryptionKey"


def _signature(rule: PolicyRule) -> Tuple[Any, ...]:
    return (rule.effect, rule.principals, rule.resources, rule.actions, rule.conditions)


class EncryptionGate:
    """Generates and checks the deny rules that force KMS writes with the designated key.

    Every protected container gets two rules on ``write`` for any principal:
    one rejecting any encryption mode other than ``aws:kms`` (an absent header
    is rejected too), one rejecting a key id that is present and differs from
    the container's key. Writes naming no key id fall back to the bucket default.
    """

    def __init__(self, catalog: ResourceCatalog) -> None:
        self.catalog = catalog

    def containers(self) -> List[Resource]:
        return self.catalog.list(ResourceKind.STORAGE_CONTAINER)

    def designated_key(self, container_id: str) -> str:
        """Return the key identifier writes to ``container_id`` must use."""
        container = self.catalog.get(container_id)
        if container.kind is not ResourceKind.STORAGE_CONTAINER:
            raise ValidationError(f"'{container_id}' is not a protected storage container")
        key = self.catalog.get(container.encryption_key or "")
        return key.arn or key.resource_id

    def rules_for(self, container_id: str) -> List[PolicyRule]:
        key_id = self.designated_key(container_id)
        return [
            PolicyRule(
                sid=f"{container_id}:{DENY_MODE_SUFFIX}",
                effect=Effect.DENY,
                principals=(ANY_PRINCIPAL,),
                resources=(container_id,),
                actions=frozenset({WRITE_ACTION}),
                conditions=(Condition("StringNotEquals", ENCRYPTION_HEADER, (APPROVED_MODE,)),),
            ),
            PolicyRule(
                sid=f"{container_id}:{DENY_KEY_SUFFIX}",
                effect=Effect.DENY,
                principals=(ANY_PRINCIPAL,),
                resources=(container_id,),
                actions=frozenset({WRITE_ACTION}),
                conditions=(
                    Condition("Null", KEY_ID_HEADER, ("false",)),
                    Condition("StringNotEquals", KEY_ID_HEADER, (key_id,)),
                ),
            ),
        ]

    def rules(self) -> List[PolicyRule]:
        generated: List[PolicyRule] = []
        for container in sorted(self.containers(), key=lambda r: r.resource_id):
            generated.extend(self.rules_for(container.resource_id))
        return generated

    def write_conditions(self, container_id: str) -> Tuple[Condition, ...]:
        """Conditions a capability must carry for its writes to pass the gate."""
        key_id = self.designated_key(container_id)
        return (
            Condition("StringEquals", ENCRYPTION_HEADER, (APPROVED_MODE,)),
            Condition("StringEqualsIfExists", KEY_ID_HEADER, (key_id,)),
        )

    @staticmethod
    def write_context(encryption_header: Optional[str], key_id: Optional[str] = None) -> Dict[str, str]:
        context: Dict[str, str] = {}
        if encryption_header:
            context[ENCRYPTION_HEADER] = encryption_header
        if key_id:
            context[KEY_ID_HEADER] = key_id
        return context

    def is_write_compliant(
        self, container_id: str, encryption_header: Optional[str], key_id: Optional[str] = None
    ) -> bool:
        """True iff no gate rule would reject this write (absent header fails closed)."""
        context = self.write_context(encryption_header, key_id)
        return not any(rule.conditions_hold(context) for rule in self.rules_for(container_id))

    def verify(self, rules: Iterable[PolicyRule]) -> None:
        """Raise ValidationError unless every container carries both deny rules."""
        present = {_signature(rule) for rule in rules}
        for container in self.containers():
            for expected in self.rules_for(container.resource_id):
                if _signature(expected) not in present:
                    raise ValidationError(
                        f"Storage container '{container.resource_id}' is missing deny rule '{expected.sid}'"
                    )
