"""Reusable IAM helper utilities: ARN builders and abstract-to-IAM action mapping."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

from infrastructure.policy.models import ResourceKind


FALLBACK_ACCOUNT = "${AWS::AccountId}"

# Scope of an IAM statement relative to the resource ARN
SCOPE_RESOURCE = "resource"
SCOPE_BUCKET = "bucket"
SCOPE_OBJECTS = "objects"

_IAM_ACTIONS: Dict[Tuple[ResourceKind, str], Tuple[List[str], str]] = {
    (ResourceKind.STORAGE_CONTAINER, "list"): (["s3:ListBucket"], SCOPE_BUCKET),
    (ResourceKind.STORAGE_CONTAINER, "read"): (["s3:GetObject"], SCOPE_OBJECTS),
    (ResourceKind.STORAGE_CONTAINER, "write"): (["s3:PutObject"], SCOPE_OBJECTS),
    (ResourceKind.STORAGE_CONTAINER, "delete"): (["s3:DeleteObject"], SCOPE_OBJECTS),
    (ResourceKind.EXTERNAL_STORAGE, "list"): (["s3:ListBucket"], SCOPE_BUCKET),
    (ResourceKind.EXTERNAL_STORAGE, "read"): (["s3:GetObject"], SCOPE_OBJECTS),
    (ResourceKind.KEY, "encrypt"): (["kms:Encrypt", "kms:GenerateDataKey"], SCOPE_RESOURCE),
    (ResourceKind.KEY, "decrypt"): (["kms:Decrypt"], SCOPE_RESOURCE),
    (ResourceKind.TRIGGER, "enable"): (["events:EnableRule"], SCOPE_RESOURCE),
    (ResourceKind.TRIGGER, "disable"): (["events:DisableRule"], SCOPE_RESOURCE),
    (ResourceKind.PARAMETER, "read"): (["ssm:GetParameter"], SCOPE_RESOURCE),
    (ResourceKind.PARAMETER, "write"): (["ssm:PutParameter"], SCOPE_RESOURCE),
    (ResourceKind.LOG_GROUP, "create"): (["logs:CreateLogGroup"], SCOPE_RESOURCE),
    (ResourceKind.LOG_GROUP, "write"): (["logs:CreateLogStream", "logs:PutLogEvents"], SCOPE_RESOURCE),
}

_INVOKE_ACTIONS: Dict[str, List[str]] = {
    "function": ["lambda:InvokeFunction"],
    "crawler": ["glue:StartCrawler"],
}


def dedupe(values: Iterable[str]) -> list[str]:
    """Return items without duplicates while preserving order."""
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        text = str(value or "").strip()
        if not text or text in seen:
            continue
        seen.add(text)
        result.append(text)
    return result


def iam_actions(kind: ResourceKind, action: str, job_type: Optional[str] = None) -> Tuple[List[str], str]:
    """Map an abstract action on a resource kind to IAM actions and statement scope."""
    if kind is ResourceKind.COMPUTE_JOB and action == "invoke":
        try:
            return list(_INVOKE_ACTIONS[str(job_type)]), SCOPE_RESOURCE
        except KeyError:
            raise ValueError(f"No invoke action for job type {job_type!r}") from None
    try:
        actions, scope = _IAM_ACTIONS[(kind, action)]
    except KeyError:
        raise ValueError(f"No IAM mapping for '{action}' on {kind.value}") from None
    return list(actions), scope


def bucket_arn(bucket_name: str) -> str:
    """Return the ARN for an S3 bucket."""
    bucket = str(bucket_name or "").strip()
    if not bucket:
        raise ValueError("Bucket name must be provided")
    return f"arn:aws:s3:::{bucket}"


def bucket_objects_arn(bucket_name: str, prefix: Optional[str] = None) -> str:
    """Return an object-level ARN for an S3 bucket with an optional prefix."""
    base_arn = bucket_arn(bucket_name)
    if prefix is None or not str(prefix).strip():
        return f"{base_arn}/*"
    normalized = str(prefix).strip().lstrip("/")
    if normalized.endswith("*"):
        return f"{base_arn}/{normalized}"
    return f"{base_arn}/{normalized.rstrip('/')}/*"


def resolve_account(account_id: Optional[str]) -> str:
    """Return the configured account or the CloudFormation pseudo-parameter placeholder."""
    return str(account_id or "").strip() or FALLBACK_ACCOUNT


def kms_alias_arn(region: str, account: str, alias: str) -> str:
    name = str(alias or "").strip()
    if not name:
        raise ValueError("Key alias must be provided")
    return f"arn:aws:kms:{region}:{account}:alias/{name.removeprefix('alias/')}"


def lambda_function_arn(region: str, account: str, function_name: str) -> str:
    """Colon-delimited Lambda ARN."""
    return f"arn:aws:lambda:{region}:{account}:function:{function_name}"


def glue_crawler_arn(region: str, account: str, crawler_name: str) -> str:
    return f"arn:aws:glue:{region}:{account}:crawler/{crawler_name}"


def events_rule_arn(region: str, account: str, rule_name: str) -> str:
    return f"arn:aws:events:{region}:{account}:rule/{rule_name}"


def ssm_parameter_arn(region: str, account: str, parameter_name: str) -> str:
    name = str(parameter_name or "").strip().lstrip("/")
    return f"arn:aws:ssm:{region}:{account}:parameter/{name}"


def log_group_arn(region: str, account: str, log_group_name: str) -> str:
    """ARN covering a log group and its streams."""
    return f"arn:aws:logs:{region}:{account}:log-group:{log_group_name}:*"
