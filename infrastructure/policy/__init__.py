"""Declarative access-control compiler for the DataEDU stacks."""

from .catalog import ResourceCatalog
from .compiler import CompiledPolicy, compile_policy
from .encryption import EncryptionGate
from .errors import ConflictError, NotFound, PermissionDenied, PolicyError, ValidationError
from .grants import GrantPlanner
from .locking import ReadWriteLock
from .models import (
    Binding,
    BindingState,
    Capability,
    Condition,
    Decision,
    Effect,
    Grant,
    PolicyRule,
    Principal,
    Resource,
    ResourceKind,
)
from .resolver import Evaluation, PolicyResolver
from .triggers import TriggerBinder

__all__ = [
    "Binding",
    "BindingState",
    "Capability",
    "CompiledPolicy",
    "Condition",
    "ConflictError",
    "Decision",
    "Effect",
    "EncryptionGate",
    "Evaluation",
    "Grant",
    "GrantPlanner",
    "NotFound",
    "PermissionDenied",
    "PolicyError",
    "PolicyResolver",
    "PolicyRule",
    "Principal",
    "ReadWriteLock",
    "Resource",
    "ResourceCatalog",
    "ResourceKind",
    "TriggerBinder",
    "ValidationError",
    "compile_policy",
]
