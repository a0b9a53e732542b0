"""Data engineer event-engine module configuration."""

import os

from infrastructure.config.variants.common import (
    DATA_KEY_ALIAS,
    DEFAULT_REGION,
    SOURCE_CODE_BUCKET,
    data_buckets,
    demo_crawler_jobs,
    event_engine_assets,
    fetch_demo_data_job,
)

engineer_config = {
    "account_id": os.environ.get("CDK_DEFAULT_ACCOUNT"),
    "region": os.environ.get("CDK_DEFAULT_REGION", DEFAULT_REGION),
    "stack_name": "DataEduDataEngineerEeStack",
    "team_id": "0123456789abcdefdataengineer0000",
    "team_id_description": "Unique ID of this Team",
    "key_alias": DATA_KEY_ALIAS,
    "key_description": "KMS key to encrypt objects in the dataEDU S3 buckets.",
    "key_pending_window_days": 7,
    "enable_key_rotation": True,
    "removal_policy": "destroy",
    "log_retention_days": 14,
    "source_code_bucket": SOURCE_CODE_BUCKET,
    "buckets": data_buckets("dataedu-de"),
    "external_buckets": event_engine_assets(),
    "jobs": [
        fetch_demo_data_job(),
        *demo_crawler_jobs(),
        # Incremental LMS pull: runs until the cursor catches up, then switches its trigger off
        {
            "name": "dataedu-fetch-lms-updates",
            "type": "function",
            "description": "Lambda function that pulls new LMS demo events into the raw bucket "
            "and disables its own schedule once the backlog is drained.",
            "handler": "dataedu_fetch_lms_updates.lambda_handler",
            "runtime": "python3.12",
            "memory": 256,
            "timeout": 300,
            "code_key": "modules/cfdd4f678e99415a9c1f11342a3a9887/v1/lambda/dataedu_fetch_lms_updates.zip",
            "environment": {
                "LMS_DEMO_RAW_DATA_PREFIX": "lmsapi/",
                "CURSOR_PARAMETER_NAME": "/dataedu/lms/cursor",
                "TRIGGER_RULE_NAME": "dataedu-fetch-lms-updates-schedule",
            },
            "bucket_environment": {"RAW_DATA_BUCKET_NAME": "raw"},
            "capabilities": [
                {"resource": "raw", "actions": ["list"]},
                {"resource": "raw", "actions": ["write"], "encrypted": True},
                {"resource": "data-key", "actions": ["encrypt"]},
                {"resource": "lms-cursor", "actions": ["read", "write"]},
            ],
        },
    ],
    "triggers": [
        {
            "name": "dataedu-fetch-lms-updates-schedule",
            "job": "dataedu-fetch-lms-updates",
            "schedule": "rate(5 minutes)",
            "enabled": False,
            "self_disable": True,
            "description": "Polls LMS updates; enabled from the runbook, disabled by the job itself.",
        },
    ],
    "parameters": [
        {
            "name": "lms-cursor",
            "parameter_name": "/dataedu/lms/cursor",
            "value": "1970-01-01T00:00:00Z",
            "description": "Timestamp of the last LMS event copied into the raw bucket.",
        },
    ],
    "tags": {
        "Project": "DataEDU",
        "Module": "DataEngineer",
    },
}
