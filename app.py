#!/usr/bin/env python3
"""
DataEDU Event-Engine CDK App
One parameterized stack; the variant (analyst, engineer, scientist) is chosen with ``-c variant=...``.
"""

import aws_cdk as cdk

from infrastructure.config.variants import get_variant_config
from infrastructure.policy import compile_policy
from infrastructure.stacks.data_edu_stack import DataEduStack

app = cdk.App()

# Get variant configuration
variant = app.node.try_get_context("variant") or "analyst"
config = get_variant_config(variant)

# CDK environment (account/region)
cdk_env = cdk.Environment(account=config.get("account_id"), region=config.get("region", "us-east-1"))

# Compile and verify the access policy before anything is synthesized
policy = compile_policy(config, variant)

stack = DataEduStack(
    app,
    config["stack_name"],
    policy=policy,
    config=config,
    env=cdk_env,
)

# ========================================
# TAGGING STRATEGY
# ========================================

cdk.Tags.of(app).add("Variant", variant)
cdk.Tags.of(app).add("ManagedBy", "CDK")
for tag_key, tag_value in (config.get("tags") or {}).items():
    cdk.Tags.of(stack).add(tag_key, tag_value)

app.synth()
