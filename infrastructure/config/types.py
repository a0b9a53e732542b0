"""Typed configuration contracts for the stack variants."""

from __future__ import annotations

from typing import Dict, List, NotRequired, Required, TypedDict


class BucketConfig(TypedDict, total=False):
    """A protected, KMS-encrypted bucket named ``prefix + team id``."""

    name: Required[str]
    prefix: Required[str]
    description: NotRequired[str]


class ExternalBucketConfig(TypedDict, total=False):
    """A bucket referenced read-only and not provisioned by the stack."""

    name: Required[str]
    bucket_name: Required[str]


class CapabilityConfig(TypedDict, total=False):
    """Declared need of a job; ``encrypted`` adds the write conditions of the target bucket."""

    resource: Required[str]
    actions: Required[List[str]]
    encrypted: NotRequired[bool]


class CrawlerTargetConfig(TypedDict):
    bucket: str
    prefix: str


class JobConfig(TypedDict, total=False):
    """A Lambda function or Glue crawler."""

    name: Required[str]
    type: Required[str]
    description: NotRequired[str]

    # function settings
    handler: NotRequired[str]
    runtime: NotRequired[str]
    memory: NotRequired[int]
    timeout: NotRequired[int]
    code_key: NotRequired[str]
    environment: NotRequired[Dict[str, str]]
    bucket_environment: NotRequired[Dict[str, str]]
    write_logs: NotRequired[bool]

    # crawler settings
    database: NotRequired[str]
    targets: NotRequired[List[CrawlerTargetConfig]]

    capabilities: NotRequired[List[CapabilityConfig]]


class TriggerConfig(TypedDict, total=False):
    """Scheduled trigger bound to a job; disabled unless ``enabled`` is set."""

    name: Required[str]
    job: Required[str]
    schedule: Required[str]
    enabled: NotRequired[bool]
    self_disable: NotRequired[bool]
    description: NotRequired[str]


class ParameterConfig(TypedDict, total=False):
    name: Required[str]
    parameter_name: Required[str]
    value: Required[str]
    description: NotRequired[str]


class PlatformConfig(TypedDict, total=False):
    """Strongly-typed variant configuration contract."""

    region: Required[str]
    account_id: NotRequired[str | None]
    stack_name: Required[str]

    team_id: Required[str]
    team_id_description: NotRequired[str]

    key_alias: Required[str]
    key_description: NotRequired[str]
    key_pending_window_days: NotRequired[int]
    enable_key_rotation: NotRequired[bool]

    removal_policy: NotRequired[str]
    log_retention_days: NotRequired[int]

    source_code_bucket: NotRequired[str]

    buckets: Required[List[BucketConfig]]
    external_buckets: NotRequired[List[ExternalBucketConfig]]
    jobs: NotRequired[List[JobConfig]]
    triggers: NotRequired[List[TriggerConfig]]
    parameters: NotRequired[List[ParameterConfig]]

    tags: NotRequired[Dict[str, str]]
