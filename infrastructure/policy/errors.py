"""Error taxonomy for the policy compiler.

Errors are raised where the inconsistency is detected and propagated to the
caller. Nothing in the policy core retries or repairs an invalid policy.
"""

from __future__ import annotations


class PolicyError(Exception):
    """Base class for all policy compiler errors."""


class NotFound(PolicyError, LookupError):
    """Raised when a resource, binding or principal reference is unknown."""


class ConflictError(PolicyError):
    """Raised when a requested capability can never be satisfied under the deny rules."""


class PermissionDenied(PolicyError):
    """Raised when an action is attempted without a matching allow."""


class ValidationError(PolicyError, ValueError):
    """Raised when a resource, rule or manifest is malformed."""
