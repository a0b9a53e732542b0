#!/usr/bin/env python3
"""Compile a stack variant's access policy and check it before deployment.

Steps
-----
1. Compile the variant configuration (catalog, deny rules, grants, bindings).
2. Write the manifest and read it back; the rebuilt policy must be identical.
3. Evaluate any ``--request principal:resource:action`` given on the command line.
4. Emit a machine-readable summary; policy errors exit non-zero.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List

from infrastructure.config.variants import VARIANTS, get_variant_config
from infrastructure.policy import CompiledPolicy, PolicyError, ValidationError, compile_policy
from infrastructure.policy import manifest
from infrastructure.policy.encryption import EncryptionGate


def _parse_request(text: str) -> Dict[str, str]:
    parts = text.split(":")
    if len(parts) != 3 or not all(parts):
        raise ValidationError(f"Request must look like principal:resource:action, got {text!r}")
    return {"principal": parts[0], "resource": parts[1], "action": parts[2]}


def _evaluate_requests(policy: CompiledPolicy, requests: List[str], encryption: str, key_id: str) -> List[Dict[str, Any]]:
    context = EncryptionGate.write_context(encryption or None, key_id or None)
    results: List[Dict[str, Any]] = []
    for text in requests:
        request = _parse_request(text)
        evaluation = policy.resolver.explain(request["principal"], request["resource"], request["action"], context)
        results.append({**request, **evaluation.to_dict()})
    return results


def validate(variant: str, output: Path, requests: List[str], encryption: str = "", key_id: str = "") -> Dict[str, Any]:
    config = get_variant_config(variant)
    policy = compile_policy(config, variant)

    state = policy.state()
    manifest.write(state, output)
    reloaded = CompiledPolicy.from_state(manifest.read(output))
    if manifest.dumps(reloaded.state()) != manifest.dumps(state):
        raise ValidationError(f"Manifest {output} does not round-trip")

    return {
        "variant": variant,
        "status": "ok",
        "manifest": str(output),
        "resources": len(state.resources),
        "rules": len(state.rules),
        "grants": len(state.grants),
        "bindings": [b.to_dict() for b in state.bindings],
        "reachable_jobs": policy.binder.reachable_jobs(),
        "requests": _evaluate_requests(policy, requests, encryption, key_id),
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="Compile and verify a DataEDU access policy")
    parser.add_argument("--variant", "-v", choices=list(VARIANTS), default="analyst", help="Stack variant")
    parser.add_argument("--output", "-o", default="policy_manifest.json", help="Manifest output path")
    parser.add_argument(
        "--request",
        "-r",
        action="append",
        default=[],
        help="Evaluate principal:resource:action (repeatable)",
    )
    parser.add_argument("--encryption", default="", help="Encryption header sent with write requests")
    parser.add_argument("--key-id", default="", help="Key id header sent with write requests")
    args = parser.parse_args()

    try:
        summary = validate(args.variant, Path(args.output), args.request, args.encryption, args.key_id)
    except PolicyError as exc:
        print(json.dumps({"variant": args.variant, "status": "error", "error": type(exc).__name__, "message": str(exc)}))
        return 1

    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
