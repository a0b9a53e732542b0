"""Construct rendering a compute job's grants as its IAM execution role."""

from __future__ import annotations

import re
from typing import Callable, Dict, List, Mapping, Sequence

from aws_cdk import aws_iam as iam
from constructs import Construct

from infrastructure.core.iam import utils as iam_utils
from infrastructure.policy.models import Condition, Grant, Resource, ResourceKind


ResourceArnResolver = Callable[[str, str], str]
ValueRenderer = Callable[[str], str]

_SERVICE_PRINCIPALS = {
    "function": "lambda.amazonaws.com",
    "crawler": "glue.amazonaws.com",
}

_MANAGED_POLICIES = {
    "crawler": ["service-role/AWSGlueServiceRole"],
}

_POLICY_NAME_INVALID = re.compile(r"[^\w+=,.@-]")


def render_conditions(conditions: Sequence[Condition], render_value: ValueRenderer) -> Dict[str, Dict[str, object]]:
    """Render conditions in IAM JSON shape: {operator: {key: value | [values]}}."""
    rendered: Dict[str, Dict[str, object]] = {}
    for condition in conditions:
        values = [render_value(v) for v in condition.values]
        rendered.setdefault(condition.operator, {})[condition.key] = values[0] if len(values) == 1 else values
    return rendered


def policy_name(resource_id: str) -> str:
    """Inline policy name for the grants on one resource."""
    return "Grants-" + _POLICY_NAME_INVALID.sub("-", resource_id)


class JobExecutionRoleConstruct(Construct):
    """Provision one job's execution role with an inline policy per granted resource."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        job: Resource,
        grants: Sequence[Grant],
        resources: Mapping[str, Resource],
        resource_arn: ResourceArnResolver,
        render_value: ValueRenderer = str,
    ) -> None:
        super().__init__(scope, construct_id)

        job_type = str(job.attributes.get("job_type", "function"))
        try:
            service = _SERVICE_PRINCIPALS[job_type]
        except KeyError:
            raise ValueError(f"Unsupported job type {job_type!r} for '{job.resource_id}'") from None

        by_resource: Dict[str, List[iam.PolicyStatement]] = {}
        for grant in sorted(grants, key=lambda g: g.grant_id):
            statements = self._grant_statements(grant, resources, resource_arn, render_value)
            if statements:
                by_resource.setdefault(grant.resource_id, []).extend(statements)
        self._statements = [s for statements in by_resource.values() for s in statements]

        principal = job.principal
        self._role = iam.Role(
            self,
            "Role",
            role_name=principal.name if principal else None,
            assumed_by=iam.ServicePrincipal(service),
            description=f"Execution role for {job.resource_id}",
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name(name) for name in _MANAGED_POLICIES.get(job_type, [])
            ],
            inline_policies={
                policy_name(resource_id): iam.PolicyDocument(statements=statements)
                for resource_id, statements in by_resource.items()
            },
        )

    @staticmethod
    def _grant_statements(
        grant: Grant,
        resources: Mapping[str, Resource],
        resource_arn: ResourceArnResolver,
        render_value: ValueRenderer,
    ) -> List[iam.PolicyStatement]:
        target = resources[grant.resource_id]
        # Invoking itself is authorized by the trigger target, not the job's own role
        if target.kind is ResourceKind.COMPUTE_JOB and target.resource_id == grant.job_id:
            return []

        job_type = str(target.attributes.get("job_type", "")) or None
        by_scope: Dict[str, List[str]] = {}
        for action in sorted(grant.actions):
            iam_actions, scope = iam_utils.iam_actions(target.kind, action, job_type)
            by_scope.setdefault(scope, []).extend(iam_actions)

        conditions = render_conditions(grant.conditions, render_value)
        return [
            iam.PolicyStatement(
                effect=iam.Effect.ALLOW,
                actions=iam_utils.dedupe(actions),
                resources=[resource_arn(grant.resource_id, scope)],
                conditions=conditions or None,
            )
            for scope, actions in by_scope.items()
        ]

    @property
    def role(self) -> iam.Role:
        """Return the created IAM role."""
        return self._role

    @property
    def statements(self) -> List[iam.PolicyStatement]:
        return list(self._statements)
