#!/usr/bin/env python3
"""Deployment script for the DataEDU CDK application."""

import argparse
import os
import shlex
import subprocess
import sys
from typing import Mapping, Optional, Sequence

from infrastructure.config.variants import VARIANTS, get_variant_config


def run_command(
    command: Sequence[str], *, check: bool = True, env: Optional[Mapping[str, str]] = None
) -> subprocess.CompletedProcess[str]:
    """Execute a subprocess without shell interpolation."""

    printable = " ".join(shlex.quote(part) for part in command)
    print(f"Running: {printable}")

    result = subprocess.run(command, capture_output=True, text=True, env=env, check=False)

    if check and result.returncode != 0:
        print(f"Command failed with return code {result.returncode}")
        if result.stdout:
            print(f"stdout: {result.stdout}")
        if result.stderr:
            print(f"stderr: {result.stderr}")
        sys.exit(result.returncode)

    return result


def deploy_stack(variant: str, team_id: Optional[str] = None) -> None:
    """Deploy the stack for the specified variant."""
    config = get_variant_config(variant)
    stack_name = str(config["stack_name"])
    print(f"Deploying variant '{variant}' as {stack_name}")

    exec_env = {**os.environ, "CDK_DEFAULT_REGION": str(config.get("region", "us-east-1"))}

    # Bootstrap CDK if needed
    print("Checking CDK bootstrap status...")
    run_command(
        ["cdk", "bootstrap", "--context", f"variant={variant}"],
        check=False,
        env=exec_env,
    )

    deploy_cmd = ["cdk", "deploy", stack_name, "--context", f"variant={variant}", "--require-approval", "never"]
    if team_id:
        deploy_cmd.extend(["--parameters", f"{stack_name}:EETeamId={team_id}"])

    run_command(deploy_cmd, env=exec_env)
    print(f"Deployment of {stack_name} completed successfully!")


def main():
    """Main deployment function."""
    parser = argparse.ArgumentParser(description="Deploy a DataEDU CDK stack variant")
    parser.add_argument("--variant", "-v", choices=list(VARIANTS), default="analyst", help="Stack variant")
    parser.add_argument("--team-id", "-t", help="Override the EETeamId stack parameter")

    args = parser.parse_args()

    # Install dependencies first
    print("Installing Python dependencies...")
    run_command([sys.executable, "-m", "pip", "install", "-e", "."])

    deploy_stack(args.variant, args.team_id)


if __name__ == "__main__":
    main()
