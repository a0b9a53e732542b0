"""Binding of scheduled/event triggers to compute jobs.

Each binding moves between DISABLED and ENABLED. Enabling is always an
administrative action. Disabling is either administrative or performed by
the bound job on its own trigger, which requires an explicit grant for
``disable`` on that trigger. Firing an enabled binding invokes the job once
and does not track completion.
"""

from __future__ import annotations

import dataclasses
import threading
from typing import Callable, Dict, Iterable, List, Optional

from infrastructure.policy.catalog import ResourceCatalog
from infrastructure.policy.errors import NotFound, PermissionDenied, ValidationError
from infrastructure.policy.models import Binding, BindingState, Decision, Resource, ResourceKind
from infrastructure.policy.resolver import PolicyResolver
from infrastructure.utils.logger import get_logger


logger = get_logger(__name__)

INVOKE_ACTION = "invoke"
DISABLE_ACTION = "disable"

JobInvoker = Callable[[Resource, Binding], None]
TransitionListener = Callable[[Binding, BindingState], None]


def _log_invocation(job: Resource, binding: Binding) -> None:
    logger.info("Invoking job", extra={"job": job.resource_id, "binding": binding.binding_id})


class TriggerBinder:
    """Owns binding state and the enable/disable/fire transitions."""

    def __init__(
        self,
        catalog: ResourceCatalog,
        resolver: PolicyResolver,
        invoker: Optional[JobInvoker] = None,
        listeners: Iterable[TransitionListener] = (),
    ) -> None:
        self.catalog = catalog
        self.resolver = resolver
        self.invoker: JobInvoker = invoker or _log_invocation
        self._listeners: List[TransitionListener] = list(listeners)
        self._bindings: Dict[str, Binding] = {}
        self._mutex = threading.Lock()

    def add_listener(self, listener: TransitionListener) -> None:
        self._listeners.append(listener)

    # -- registration -------------------------------------------------------

    def bind(
        self,
        trigger_id: str,
        job_id: str,
        schedule: str,
        *,
        enabled: bool = False,
        binding_id: Optional[str] = None,
    ) -> Binding:
        if not str(schedule or "").strip():
            raise ValidationError(f"Trigger '{trigger_id}' must declare a schedule or event pattern")

        binding = Binding(
            binding_id=binding_id or f"{trigger_id}->{job_id}",
            trigger_id=trigger_id,
            job_id=job_id,
            schedule=schedule.strip(),
            state=BindingState.ENABLED if enabled else BindingState.DISABLED,
        )
        return self.restore(binding)

    def restore(self, binding: Binding) -> Binding:
        """Register an existing binding as-is (manifest reconstruction)."""
        if self.catalog.get(binding.trigger_id).kind is not ResourceKind.TRIGGER:
            raise ValidationError(f"'{binding.trigger_id}' is not a trigger")
        if self.catalog.get(binding.job_id).kind is not ResourceKind.COMPUTE_JOB:
            raise ValidationError(f"'{binding.job_id}' is not a compute job")
        with self._mutex:
            if binding.binding_id in self._bindings:
                raise ValidationError(f"Duplicate binding identifier: {binding.binding_id}")
            self._bindings[binding.binding_id] = binding
        logger.info(
            "Bound trigger",
            extra={"binding": binding.binding_id, "job": binding.job_id, "decision": binding.state.value},
        )
        return binding

    def get(self, binding_id: str) -> Binding:
        with self._mutex:
            binding = self._bindings.get(binding_id)
        if binding is None:
            raise NotFound(f"Unknown binding: {binding_id}")
        return binding

    @property
    def bindings(self) -> List[Binding]:
        with self._mutex:
            return list(self._bindings.values())

    def bindings_for_trigger(self, trigger_id: str) -> List[Binding]:
        return [b for b in self.bindings if b.trigger_id == trigger_id]

    # -- transitions ----------------------------------------------------------

    def _transition(self, binding_id: str, target: BindingState) -> Binding:
        with self._mutex:
            current = self._bindings.get(binding_id)
            if current is None:
                raise NotFound(f"Unknown binding: {binding_id}")
            if current.state is target:
                return current
            updated = dataclasses.replace(current, state=target)
            self._bindings[binding_id] = updated
        logger.info(
            "Binding transition",
            extra={"binding": binding_id, "decision": f"{current.state.value}->{target.value}"},
        )
        try:
            for listener in self._listeners:
                listener(updated, current.state)
        except Exception:
            # The mirrored state did not follow; keep the binding where it was.
            with self._mutex:
                if self._bindings.get(binding_id) is updated:
                    self._bindings[binding_id] = current
            logger.warning(
                "Binding transition rolled back",
                extra={"binding": binding_id, "decision": f"{target.value}->{current.state.value}"},
            )
            raise
        return updated

    def enable(self, binding_id: str) -> Binding:
        """Administrative DISABLED -> ENABLED."""
        return self._transition(binding_id, BindingState.ENABLED)

    def disable(self, binding_id: str) -> Binding:
        """Administrative ENABLED -> DISABLED."""
        return self._transition(binding_id, BindingState.DISABLED)

    def self_disable(self, binding_id: str) -> Binding:
        """The bound job disables its own trigger; requires a grant for ``disable``."""
        binding = self.get(binding_id)
        job = self.catalog.get(binding.job_id)
        principal = job.principal
        if principal is None or (
            self.resolver.evaluate(principal, binding.trigger_id, DISABLE_ACTION) is not Decision.ALLOW
        ):
            logger.warning(
                "Self-disable refused",
                extra={"binding": binding_id, "job": binding.job_id, "principal": principal},
            )
            raise PermissionDenied(
                f"Job '{binding.job_id}' is not granted '{DISABLE_ACTION}' on trigger '{binding.trigger_id}'"
            )
        return self._transition(binding_id, BindingState.DISABLED)

    def fire(self, binding_id: str) -> bool:
        """Handle a firing signal; return True when the job was invoked."""
        binding = self.get(binding_id)
        if not binding.enabled:
            logger.debug("Ignoring fire on disabled binding", extra={"binding": binding_id})
            return False

        job = self.catalog.get(binding.job_id)
        principal = job.principal
        if principal is None or (
            self.resolver.evaluate(principal, job.resource_id, INVOKE_ACTION) is not Decision.ALLOW
        ):
            logger.warning("Invocation refused", extra={"binding": binding_id, "job": job.resource_id})
            raise PermissionDenied(f"Job '{job.resource_id}' is not permitted to '{INVOKE_ACTION}'")

        self.invoker(job, binding)
        return True

    def reachable_jobs(self) -> List[str]:
        """Jobs with at least one enabled binding."""
        return sorted({b.job_id for b in self.bindings if b.enabled})
