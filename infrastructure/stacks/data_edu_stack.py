"""DataEDU event-engine stack rendered from a compiled access policy."""

from typing import Dict

from aws_cdk import (
    Stack,
    aws_events as events,
    aws_events_targets as targets,
    aws_glue as glue,
    aws_lambda as lambda_,
    aws_logs as logs,
    aws_s3 as s3,
    aws_ssm as ssm,
    Aws,
    CfnOutput,
    CfnParameter,
    Duration,
    Fn,
    RemovalPolicy,
)
from constructs import Construct

from infrastructure.constructs.data_lake_construct import DataLakeConstruct
from infrastructure.core.iam import JobExecutionRoleConstruct
from infrastructure.core.iam import utils as iam_utils
from infrastructure.policy.compiler import CompiledPolicy
from infrastructure.policy.models import Resource, ResourceKind


_RUNTIMES = {
    "python3.9": lambda_.Runtime.PYTHON_3_9,
    "python3.10": lambda_.Runtime.PYTHON_3_10,
    "python3.11": lambda_.Runtime.PYTHON_3_11,
    "python3.12": lambda_.Runtime.PYTHON_3_12,
}


def _construct_id(resource_id: str) -> str:
    return "".join(part.capitalize() for part in resource_id.replace("_", "-").split("-"))


class DataEduStack(Stack):
    """Data lake buckets, job roles, Lambda functions, crawlers and schedules for one variant."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        policy: CompiledPolicy,
        config: dict,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.policy = policy
        self.config = config

        self.team_id = CfnParameter(
            self,
            "EETeamId",
            type="String",
            default=str(config.get("team_id", "")),
            description=str(config.get("team_id_description", "Unique ID of this Team")),
        )

        self.data_lake = DataLakeConstruct(
            self,
            "DataLake",
            policy=policy,
            config=config,
            team_id=self.team_id.value_as_string,
        )
        self.key = self.data_lake.key

        self.parameters: Dict[str, ssm.StringParameter] = {}
        for parameter in policy.resources(ResourceKind.PARAMETER):
            self.parameters[parameter.resource_id] = self._create_parameter(parameter)

        self.log_groups: Dict[str, logs.LogGroup] = {}
        for log_group in policy.resources(ResourceKind.LOG_GROUP):
            self.log_groups[log_group.resource_id] = self._create_log_group(log_group)

        self.source_code_buckets: Dict[str, s3.IBucket] = {}
        self.roles: Dict[str, JobExecutionRoleConstruct] = {}
        self.functions: Dict[str, lambda_.Function] = {}
        self.crawlers: Dict[str, glue.CfnCrawler] = {}
        for job in policy.resources(ResourceKind.COMPUTE_JOB):
            role = self._create_role(job)
            self.roles[job.resource_id] = role
            if job.attributes.get("job_type") == "crawler":
                self.crawlers[job.resource_id] = self._create_crawler(job, role)
            else:
                self.functions[job.resource_id] = self._create_function(job, role)

        self.rules: Dict[str, events.Rule] = {}
        for binding in policy.binder.bindings:
            self.rules[binding.trigger_id] = self._create_schedule(binding.trigger_id, binding.job_id, binding.enabled)

        self._create_outputs()

    def _removal_policy(self) -> RemovalPolicy:
        cfg_policy = str(self.config.get("removal_policy", "retain") or "retain").lower()
        return RemovalPolicy.DESTROY if cfg_policy == "destroy" else RemovalPolicy.RETAIN

    def _log_retention(self) -> logs.RetentionDays:
        """Map integer days from config to CloudWatch Logs retention enum."""
        retention_map = {
            1: logs.RetentionDays.ONE_DAY,
            3: logs.RetentionDays.THREE_DAYS,
            5: logs.RetentionDays.FIVE_DAYS,
            7: logs.RetentionDays.ONE_WEEK,
            14: logs.RetentionDays.TWO_WEEKS,
            30: logs.RetentionDays.ONE_MONTH,
            90: logs.RetentionDays.THREE_MONTHS,
        }
        return retention_map.get(self.config.get("log_retention_days", 14), logs.RetentionDays.TWO_WEEKS)

    # -- resource ARNs ---------------------------------------------------------

    def resource_arn(self, resource_id: str, scope: str) -> str:
        """Deployed ARN for a catalog resource at the given statement scope.

        Jobs, rules and log groups are addressed by name so that role policies
        never reference the functions or rules that reference the roles.
        """
        resource = self.policy.catalog.get(resource_id)
        kind = resource.kind
        if kind is ResourceKind.STORAGE_CONTAINER:
            return self.data_lake.bucket_arn(resource_id, scope)
        if kind is ResourceKind.EXTERNAL_STORAGE:
            bucket_name = str(resource.attributes["bucket_name"])
            if scope == iam_utils.SCOPE_OBJECTS:
                return iam_utils.bucket_objects_arn(bucket_name)
            return iam_utils.bucket_arn(bucket_name)
        if kind is ResourceKind.KEY:
            return self.key.key_arn
        if kind is ResourceKind.PARAMETER:
            return self.parameters[resource_id].parameter_arn
        if kind is ResourceKind.TRIGGER:
            return iam_utils.events_rule_arn(Aws.REGION, Aws.ACCOUNT_ID, resource_id)
        if kind is ResourceKind.LOG_GROUP:
            return iam_utils.log_group_arn(Aws.REGION, Aws.ACCOUNT_ID, str(resource.attributes["log_group_name"]))
        if resource.attributes.get("job_type") == "crawler":
            return iam_utils.glue_crawler_arn(Aws.REGION, Aws.ACCOUNT_ID, resource_id)
        return iam_utils.lambda_function_arn(Aws.REGION, Aws.ACCOUNT_ID, resource_id)

    # -- resources -------------------------------------------------------------

    def _create_parameter(self, parameter: Resource) -> ssm.StringParameter:
        return ssm.StringParameter(
            self,
            f"{_construct_id(parameter.resource_id)}Parameter",
            parameter_name=str(parameter.attributes["parameter_name"]),
            string_value=str(parameter.attributes["value"]),
            description=str(parameter.attributes.get("description", "")) or None,
        )

    def _create_log_group(self, log_group: Resource) -> logs.LogGroup:
        return logs.LogGroup(
            self,
            f"{_construct_id(log_group.resource_id)}Group",
            log_group_name=str(log_group.attributes["log_group_name"]),
            retention=self._log_retention(),
            removal_policy=self._removal_policy(),
        )

    def _create_role(self, job: Resource) -> JobExecutionRoleConstruct:
        return JobExecutionRoleConstruct(
            self,
            f"{_construct_id(job.resource_id)}Role",
            job=job,
            grants=self.policy.resolver.grants_for(job.resource_id),
            resources={r.resource_id: r for r in self.policy.catalog.list()},
            resource_arn=self.resource_arn,
            render_value=self.data_lake.render_value,
        )

    def _source_code_bucket(self, bucket_name: str) -> s3.IBucket:
        bucket = self.source_code_buckets.get(bucket_name)
        if bucket is None:
            bucket = s3.Bucket.from_bucket_name(
                self, f"SourceCodeBucket{len(self.source_code_buckets)}", bucket_name
            )
            self.source_code_buckets[bucket_name] = bucket
        return bucket

    def _create_function(self, job: Resource, role: JobExecutionRoleConstruct) -> lambda_.Function:
        attributes = job.attributes
        runtime_name = str(attributes.get("runtime", "python3.12"))
        if runtime_name not in _RUNTIMES:
            raise ValueError(f"Unsupported runtime {runtime_name!r} for '{job.resource_id}'")

        environment = {str(k): str(v) for k, v in (attributes.get("environment") or {}).items()}
        for variable, container_id in (attributes.get("bucket_environment") or {}).items():
            environment[str(variable)] = self.data_lake.bucket_name(str(container_id))

        log_group = self.log_groups.get(f"{job.resource_id}-logs")
        return lambda_.Function(
            self,
            f"{_construct_id(job.resource_id)}Function",
            function_name=job.resource_id,
            code=lambda_.Code.from_bucket(
                self._source_code_bucket(str(attributes["code_bucket"])), str(attributes["code_key"])
            ),
            runtime=_RUNTIMES[runtime_name],
            handler=str(attributes["handler"]),
            memory_size=int(attributes.get("memory", 256)),
            timeout=Duration.seconds(int(attributes.get("timeout", 300))),
            role=role.role,
            environment=environment,
            log_group=log_group,
            description=str(attributes.get("description", "")) or None,
        )

    def _create_crawler(self, job: Resource, role: JobExecutionRoleConstruct) -> glue.CfnCrawler:
        attributes = job.attributes
        s3_targets = [
            glue.CfnCrawler.S3TargetProperty(
                path=Fn.join("", ["s3://", self.data_lake.bucket_name(str(t["bucket"])), "/", str(t.get("prefix", ""))])
            )
            for t in attributes.get("targets", [])
        ]
        return glue.CfnCrawler(
            self,
            f"{_construct_id(job.resource_id)}Crawler",
            name=job.resource_id,
            role=role.role.role_arn,
            database_name=str(attributes.get("database", "")) or None,
            description=str(attributes.get("description", "")) or None,
            targets=glue.CfnCrawler.TargetsProperty(s3_targets=s3_targets),
        )

    def _create_schedule(self, trigger_id: str, job_id: str, enabled: bool) -> events.Rule:
        """Create the EventBridge rule for a trigger; its state mirrors the binding."""
        if job_id not in self.functions:
            raise ValueError(f"Trigger '{trigger_id}' must target a function job, got '{job_id}'")
        trigger = self.policy.catalog.get(trigger_id)
        return events.Rule(
            self,
            f"{_construct_id(trigger_id)}Rule",
            rule_name=trigger_id,
            schedule=events.Schedule.expression(str(trigger.attributes["schedule"])),
            enabled=enabled,
            description=str(trigger.attributes.get("description", "")) or None,
            targets=[targets.LambdaFunction(self.functions[job_id])],
        )

    def _create_outputs(self) -> None:
        """Create CloudFormation outputs."""
        CfnOutput(
            self,
            "DataKeyArn",
            value=self.key.key_arn,
            description="KMS key encrypting the data lake buckets",
        )

        for container_id, bucket in self.data_lake.buckets.items():
            CfnOutput(
                self,
                f"{_construct_id(container_id)}BucketName",
                value=bucket.bucket_name,
                description=f"{container_id} data S3 bucket name",
            )

        for job_id, role in self.roles.items():
            CfnOutput(
                self,
                f"{_construct_id(job_id)}RoleArn",
                value=role.role.role_arn,
                description=f"Execution role ARN for {job_id}",
            )
