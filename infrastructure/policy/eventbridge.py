"""Mirror trigger binding transitions into deployed EventBridge rules."""

from __future__ import annotations

from typing import Any, Optional

import boto3
from botocore.exceptions import ClientError

from infrastructure.policy.models import Binding, BindingState
from infrastructure.utils.logger import get_logger


logger = get_logger(__name__)


class EventBridgeRuleSwitch:
    """Transition listener enabling/disabling the EventBridge rule named after the trigger."""

    def __init__(self, events_client: Optional[Any] = None, *, region_name: Optional[str] = None) -> None:
        self.events = events_client or boto3.client("events", region_name=region_name)

    def __call__(self, binding: Binding, previous: BindingState) -> None:
        self.apply(binding)

    def apply(self, binding: Binding) -> None:
        rule_name = binding.trigger_id
        try:
            if binding.enabled:
                self.events.enable_rule(Name=rule_name)
            else:
                self.events.disable_rule(Name=rule_name)
        except ClientError as exc:
            logger.error(
                "Failed to switch EventBridge rule",
                extra={"binding": binding.binding_id, "decision": binding.state.value},
            )
            raise RuntimeError(f"Could not set rule '{rule_name}' to {binding.state.value}: {exc}") from exc
        logger.info("Switched EventBridge rule", extra={"binding": binding.binding_id, "decision": binding.state.value})

    def deployed_state(self, rule_name: str) -> BindingState:
        """Return the state of a deployed rule as a binding state."""
        try:
            response = self.events.describe_rule(Name=rule_name)
        except ClientError as exc:
            raise RuntimeError(f"Could not describe rule '{rule_name}': {exc}") from exc
        return BindingState.ENABLED if response.get("State") == "ENABLED" else BindingState.DISABLED
