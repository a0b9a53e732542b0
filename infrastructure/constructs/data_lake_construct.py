"""Data lake construct: the data key and the KMS-encrypted buckets it protects."""

from typing import Dict

from aws_cdk import (
    aws_iam as iam,
    aws_kms as kms,
    aws_s3 as s3,
    Duration,
    Fn,
    RemovalPolicy,
)
from constructs import Construct

from infrastructure.core.iam import utils as iam_utils
from infrastructure.core.iam.job_execution_role import render_conditions
from infrastructure.policy.compiler import CompiledPolicy, DATA_KEY_ID
from infrastructure.policy.models import ResourceKind


def _construct_id(resource_id: str) -> str:
    return "".join(part.capitalize() for part in resource_id.replace("_", "-").split("-")) or resource_id


class DataLakeConstruct(Construct):
    """Construct for creating the data key and KMS-encrypted S3 buckets."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        policy: CompiledPolicy,
        config: dict,
        team_id: str,
    ) -> None:
        super().__init__(scope, construct_id)

        self.policy = policy
        self.config = config
        self.team_id = team_id

        self.key = self._create_key()
        self.buckets: Dict[str, s3.Bucket] = {}
        for container in policy.resources(ResourceKind.STORAGE_CONTAINER):
            self.buckets[container.resource_id] = self._create_bucket(container.resource_id)

    def _removal_policy(self) -> RemovalPolicy:
        cfg_policy = str(self.config.get("removal_policy", "retain") or "retain").lower()
        return RemovalPolicy.DESTROY if cfg_policy == "destroy" else RemovalPolicy.RETAIN

    def _create_key(self) -> kms.Key:
        """Create the data key; the default key policy keeps it editable from the console."""
        key_resource = self.policy.catalog.get(DATA_KEY_ID)
        attributes = key_resource.attributes
        return kms.Key(
            self,
            "DataKey",
            alias=str(attributes["alias"]),
            description=str(attributes.get("description", "")) or None,
            enable_key_rotation=bool(attributes.get("enable_key_rotation", True)),
            pending_window=Duration.days(int(attributes.get("pending_window_days", 7))),
            removal_policy=self._removal_policy(),
        )

    def render_value(self, value: str) -> str:
        """Substitute compiled key identifiers with the deployed key ARN."""
        key_resource = self.policy.catalog.get(DATA_KEY_ID)
        if value in (key_resource.arn, key_resource.resource_id):
            return self.key.key_arn
        return value

    def bucket_name(self, container_id: str) -> str:
        prefix = str(self.policy.catalog.get(container_id).attributes["name_prefix"])
        return Fn.join("", [prefix, self.team_id])

    def _create_bucket(self, container_id: str) -> s3.Bucket:
        bucket = s3.Bucket(
            self,
            f"{_construct_id(container_id)}Bucket",
            bucket_name=self.bucket_name(container_id),
            versioned=True,
            encryption=s3.BucketEncryption.KMS,
            encryption_key=self.key,
            bucket_key_enabled=True,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            removal_policy=self._removal_policy(),
            auto_delete_objects=bool(self.config.get("auto_delete_objects", False)),
            enforce_ssl=True,
        )
        for rule in self.policy.gate.rules_for(container_id):
            bucket.add_to_resource_policy(
                iam.PolicyStatement(
                    sid=rule.sid.split(":", 1)[-1],
                    effect=iam.Effect.DENY,
                    principals=[iam.AnyPrincipal()],
                    actions=["s3:PutObject"],
                    resources=[bucket.arn_for_objects("*")],
                    conditions=render_conditions(rule.conditions, self.render_value),
                )
            )
        return bucket

    def bucket_arn(self, container_id: str, scope: str) -> str:
        """Deployed ARN for a container at bucket or object scope."""
        bucket = self.buckets[container_id]
        return bucket.arn_for_objects("*") if scope == iam_utils.SCOPE_OBJECTS else bucket.bucket_arn
