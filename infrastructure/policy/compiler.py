"""Single parameterized policy template for the DataEDU stacks.

``compile_policy`` turns a variant configuration record into a verified
policy: catalog, encryption deny rules, least-privilege grants and trigger
bindings. The result can be serialized into a manifest and rebuilt from it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from infrastructure.config.types import JobConfig, PlatformConfig
from infrastructure.core.iam import utils as iam_utils
from infrastructure.policy.catalog import ResourceCatalog
from infrastructure.policy.encryption import EncryptionGate
from infrastructure.policy.errors import ValidationError
from infrastructure.policy.grants import GrantPlanner
from infrastructure.policy.manifest import PolicyState
from infrastructure.policy.models import (
    ENCRYPTION_KEY_ATTR,
    PRINCIPAL_ATTR,
    Capability,
    Decision,
    Effect,
    PolicyRule,
    Resource,
    ResourceKind,
)
from infrastructure.policy.resolver import PolicyResolver
from infrastructure.policy.triggers import DISABLE_ACTION, INVOKE_ACTION, JobInvoker, TriggerBinder
from infrastructure.utils.logger import get_logger


logger = get_logger(__name__)

DATA_KEY_ID = "data-key"
ACCOUNT_ROOT_PRINCIPAL = "account-root"
KEY_ADMIN_SID = "EnableIamUserPermissions"

JOB_TYPES = ("function", "crawler")


def _log_group_id(job_name: str) -> str:
    return f"{job_name}-logs"


def _principal_name(job_name: str) -> str:
    return f"{job_name}-role"


@dataclass
class CompiledPolicy:
    """A verified policy and the components evaluating it."""

    variant: str
    catalog: ResourceCatalog
    gate: EncryptionGate
    resolver: PolicyResolver
    planner: GrantPlanner
    binder: TriggerBinder
    metadata: Dict[str, Any] = field(default_factory=dict)

    def resources(self, kind: Optional[ResourceKind] = None) -> List[Resource]:
        return sorted(self.catalog.list(kind), key=lambda r: r.resource_id)

    def state(self) -> PolicyState:
        return PolicyState(
            variant=self.variant,
            resources=self.catalog.list(),
            rules=self.resolver.rules,
            grants=self.resolver.grants,
            bindings=self.binder.bindings,
            metadata=dict(self.metadata),
        )

    @classmethod
    def from_state(cls, state: PolicyState, *, invoker: Optional[JobInvoker] = None) -> "CompiledPolicy":
        """Rebuild a compiled policy from a manifest, re-verifying its invariants."""
        catalog = ResourceCatalog()
        for resource in state.resources:
            catalog.add(resource)
        catalog.validate()

        gate = EncryptionGate(catalog)
        gate.verify(state.rules)

        resolver = PolicyResolver(catalog, state.rules)
        planner = GrantPlanner(catalog, resolver)
        planner.adopt(state.grants)
        resolver.add_grants(state.grants)

        binder = TriggerBinder(catalog, resolver, invoker=invoker)
        for binding in state.bindings:
            binder.restore(binding)

        return cls(
            variant=state.variant,
            catalog=catalog,
            gate=gate,
            resolver=resolver,
            planner=planner,
            binder=binder,
            metadata=dict(state.metadata),
        )


class _TemplateBuilder:
    """Builds the catalog and capability sets from a configuration record."""

    def __init__(self, config: PlatformConfig) -> None:
        self.config = config
        self.region = str(config.get("region") or "").strip()
        if not self.region:
            raise ValidationError("Configuration must define a region")
        self.account = iam_utils.resolve_account(config.get("account_id"))
        self.team_id = str(config.get("team_id") or "").strip()
        if not self.team_id:
            raise ValidationError("Configuration must define a default team_id")
        self.capabilities: Dict[str, List[Capability]] = {}

    def _format(self, template: str) -> str:
        return template.format(region=self.region, account=self.account, team_id=self.team_id)

    def add_key(self, catalog: ResourceCatalog) -> Resource:
        alias = str(self.config.get("key_alias") or "").strip()
        return catalog.add(
            Resource(
                resource_id=DATA_KEY_ID,
                kind=ResourceKind.KEY,
                arn=iam_utils.kms_alias_arn(self.region, self.account, alias),
                attributes={
                    "alias": alias,
                    "description": str(self.config.get("key_description", "")),
                    "pending_window_days": int(self.config.get("key_pending_window_days", 7)),
                    "enable_key_rotation": bool(self.config.get("enable_key_rotation", True)),
                },
            )
        )

    def add_buckets(self, catalog: ResourceCatalog) -> None:
        for bucket in self.config.get("buckets", []) or []:
            prefix = str(bucket.get("prefix", "")).strip()
            if not prefix:
                raise ValidationError(f"Bucket '{bucket.get('name')}' must define a name prefix")
            bucket_name = f"{prefix}{self.team_id}"
            catalog.add(
                Resource(
                    resource_id=bucket["name"],
                    kind=ResourceKind.STORAGE_CONTAINER,
                    arn=iam_utils.bucket_arn(bucket_name),
                    attributes={
                        ENCRYPTION_KEY_ATTR: DATA_KEY_ID,
                        "bucket_name": bucket_name,
                        "name_prefix": prefix,
                        "public_access_blocked": True,
                        "versioned": True,
                        "description": str(bucket.get("description", "")),
                    },
                )
            )
        for external in self.config.get("external_buckets", []) or []:
            bucket_name = self._format(str(external["bucket_name"]))
            catalog.add(
                Resource(
                    resource_id=external["name"],
                    kind=ResourceKind.EXTERNAL_STORAGE,
                    arn=iam_utils.bucket_arn(bucket_name),
                    attributes={"bucket_name": bucket_name},
                )
            )

    def add_parameters(self, catalog: ResourceCatalog) -> None:
        for parameter in self.config.get("parameters", []) or []:
            catalog.add(
                Resource(
                    resource_id=parameter["name"],
                    kind=ResourceKind.PARAMETER,
                    arn=iam_utils.ssm_parameter_arn(self.region, self.account, parameter["parameter_name"]),
                    attributes={
                        "parameter_name": parameter["parameter_name"],
                        "value": parameter["value"],
                        "description": str(parameter.get("description", "")),
                    },
                )
            )

    def _job_attributes(self, job: JobConfig) -> Dict[str, Any]:
        job_type = job["type"]
        attributes: Dict[str, Any] = {
            PRINCIPAL_ATTR: _principal_name(job["name"]),
            "job_type": job_type,
            "description": str(job.get("description", "")),
        }
        if job_type == "function":
            attributes.update(
                {
                    "handler": job.get("handler", "index.lambda_handler"),
                    "runtime": job.get("runtime", "python3.12"),
                    "memory": int(job.get("memory", 256)),
                    "timeout": int(job.get("timeout", 300)),
                    "code_bucket": self._format(str(self.config.get("source_code_bucket", ""))),
                    "code_key": str(job.get("code_key", "")),
                    "environment": dict(job.get("environment", {}) or {}),
                    "bucket_environment": dict(job.get("bucket_environment", {}) or {}),
                }
            )
        else:
            attributes.update(
                {
                    "database": str(job.get("database", "")),
                    "targets": [dict(t) for t in job.get("targets", []) or []],
                }
            )
        return attributes

    def add_jobs(self, catalog: ResourceCatalog, gate: EncryptionGate) -> None:
        for job in self.config.get("jobs", []) or []:
            name = job["name"]
            job_type = job.get("type")
            if job_type not in JOB_TYPES:
                raise ValidationError(f"Job '{name}' has unsupported type {job_type!r}")
            arn = (
                iam_utils.lambda_function_arn(self.region, self.account, name)
                if job_type == "function"
                else iam_utils.glue_crawler_arn(self.region, self.account, name)
            )
            catalog.add(
                Resource(resource_id=name, kind=ResourceKind.COMPUTE_JOB, arn=arn, attributes=self._job_attributes(job))
            )

            needs = self.capabilities.setdefault(name, [])
            if job_type == "function" and job.get("write_logs", True):
                log_group_name = f"/aws/lambda/{name}"
                catalog.add(
                    Resource(
                        resource_id=_log_group_id(name),
                        kind=ResourceKind.LOG_GROUP,
                        arn=iam_utils.log_group_arn(self.region, self.account, log_group_name),
                        attributes={"log_group_name": log_group_name},
                    )
                )
                needs.append(Capability(_log_group_id(name), frozenset({"create", "write"})))

        # Capabilities are resolved once every resource is registered
        for job in self.config.get("jobs", []) or []:
            needs = self.capabilities[job["name"]]
            for declared in job.get("capabilities", []) or []:
                resource_id = declared["resource"]
                conditions = gate.write_conditions(resource_id) if declared.get("encrypted") else ()
                needs.append(Capability(resource_id, frozenset(declared.get("actions", [])), conditions))

    def add_triggers(self, catalog: ResourceCatalog) -> List[Mapping[str, Any]]:
        triggers = list(self.config.get("triggers", []) or [])
        for trigger in triggers:
            name = trigger["name"]
            job_name = trigger["job"]
            if job_name not in self.capabilities:
                raise ValidationError(f"Trigger '{name}' targets unknown job '{job_name}'")
            catalog.add(
                Resource(
                    resource_id=name,
                    kind=ResourceKind.TRIGGER,
                    arn=iam_utils.events_rule_arn(self.region, self.account, name),
                    attributes={
                        "schedule": trigger["schedule"],
                        "job": job_name,
                        "description": str(trigger.get("description", "")),
                        "self_disable": bool(trigger.get("self_disable", False)),
                    },
                )
            )
            needs = self.capabilities[job_name]
            needs.append(Capability(job_name, frozenset({INVOKE_ACTION})))
            if trigger.get("self_disable"):
                needs.append(Capability(name, frozenset({DISABLE_ACTION})))
        return triggers

    def base_rules(self) -> List[PolicyRule]:
        """Account administrators keep full control of the key (console-editable key policy)."""
        return [
            PolicyRule(
                sid=KEY_ADMIN_SID,
                effect=Effect.ALLOW,
                principals=(ACCOUNT_ROOT_PRINCIPAL,),
                resources=(DATA_KEY_ID,),
                actions=frozenset({"*"}),
            )
        ]


def _verify_crawler_targets(catalog: ResourceCatalog, resolver: PolicyResolver) -> None:
    for job in catalog.list(ResourceKind.COMPUTE_JOB):
        if job.attributes.get("job_type") != "crawler":
            continue
        for target in job.attributes.get("targets", []):
            bucket_id = str(target.get("bucket", ""))
            catalog.get(bucket_id)
            for action in ("list", "read"):
                if resolver.evaluate(job.principal, bucket_id, action) is not Decision.ALLOW:  # type: ignore[arg-type]
                    raise ValidationError(f"Crawler '{job.resource_id}' cannot {action} its target '{bucket_id}'")


def compile_policy(
    config: PlatformConfig, variant: str, *, invoker: Optional[JobInvoker] = None
) -> CompiledPolicy:
    """Compile a variant configuration into a verified policy."""
    builder = _TemplateBuilder(config)

    catalog = ResourceCatalog()
    builder.add_key(catalog)
    builder.add_buckets(catalog)
    builder.add_parameters(catalog)
    gate = EncryptionGate(catalog)
    builder.add_jobs(catalog, gate)
    triggers = builder.add_triggers(catalog)
    catalog.validate()

    resolver = PolicyResolver(catalog, builder.base_rules() + gate.rules())
    planner = GrantPlanner(catalog, resolver)
    for job_id, capabilities in builder.capabilities.items():
        grants = planner.plan(job_id, capabilities)
        planner.verify_least_privilege(job_id, grants)
        resolver.add_grants(grants)

    binder = TriggerBinder(catalog, resolver, invoker=invoker)
    for trigger in triggers:
        binder.bind(trigger["name"], trigger["job"], trigger["schedule"], enabled=bool(trigger.get("enabled", False)))

    _verify_crawler_targets(catalog, resolver)

    compiled = CompiledPolicy(
        variant=variant,
        catalog=catalog,
        gate=gate,
        resolver=resolver,
        planner=planner,
        binder=binder,
        metadata={
            "stack_name": str(config.get("stack_name", "")),
            "team_id": builder.team_id,
            "region": builder.region,
            "account": builder.account,
        },
    )
    logger.info(
        f"Compiled policy: {len(catalog)} resources, {len(resolver.grants)} grants",
        extra={"variant": variant},
    )
    return compiled
