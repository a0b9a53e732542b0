#!/usr/bin/env python3
"""Enable or disable a deployed trigger and mirror the change into EventBridge.

The compiled binding is first aligned with the deployed rule state, so the
transition only calls EventBridge when the state actually changes.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict, Optional

from infrastructure.config.variants import VARIANTS, get_variant_config
from infrastructure.policy import PolicyError, compile_policy
from infrastructure.policy.eventbridge import EventBridgeRuleSwitch
from infrastructure.policy.models import BindingState


def toggle(
    variant: str,
    trigger: str,
    state: str,
    *,
    as_job: bool = False,
    events_client: Optional[Any] = None,
) -> Dict[str, Any]:
    config = get_variant_config(variant)
    policy = compile_policy(config, variant)
    switch = EventBridgeRuleSwitch(events_client, region_name=str(config.get("region")))

    policy.catalog.get(trigger)
    bindings = policy.binder.bindings_for_trigger(trigger)
    results = []
    for binding in bindings:
        deployed = switch.deployed_state(binding.trigger_id)
        if deployed is BindingState.ENABLED:
            policy.binder.enable(binding.binding_id)
        else:
            policy.binder.disable(binding.binding_id)

    policy.binder.add_listener(switch)
    for binding in bindings:
        previous = policy.binder.get(binding.binding_id).state
        if state == "enable":
            updated = policy.binder.enable(binding.binding_id)
        elif as_job:
            updated = policy.binder.self_disable(binding.binding_id)
        else:
            updated = policy.binder.disable(binding.binding_id)
        results.append({"binding": updated.binding_id, "previous": previous.value, "state": updated.state.value})

    return {"variant": variant, "trigger": trigger, "status": "ok", "bindings": results}


def main() -> int:
    parser = argparse.ArgumentParser(description="Enable or disable a DataEDU trigger")
    parser.add_argument("--variant", "-v", choices=list(VARIANTS), default="engineer", help="Stack variant")
    parser.add_argument("--trigger", "-t", required=True, help="Trigger (EventBridge rule) name")
    parser.add_argument("state", choices=["enable", "disable"], help="Target state")
    parser.add_argument(
        "--as-job",
        action="store_true",
        help="Disable on behalf of the bound job (requires its disable grant)",
    )
    args = parser.parse_args()

    try:
        summary = toggle(args.variant, args.trigger, args.state, as_job=args.as_job)
    except (PolicyError, RuntimeError) as exc:
        print(json.dumps({"trigger": args.trigger, "status": "error", "error": type(exc).__name__, "message": str(exc)}))
        return 1

    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
