"""Data analyst event-engine module configuration."""

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

analyst_config = {
    "account_id": os.environ.get("CDK_DEFAULT_ACCOUNT"),
    "region": os.environ.get("CDK_DEFAULT_REGION", DEFAULT_REGION),
    "stack_name": "DataEduDataAnalystEeStack",
    # Remove default for event-engine modules
    "team_id": "123456abcdefghijklmnopqrstuvwxyz",
    "team_id_description": "Unique ID of this Team",
    "key_alias": DATA_KEY_ALIAS,
    "key_description": "KMS key to encrypt objects in the dataEDU S3 buckets.",
    "key_pending_window_days": 7,
    "enable_key_rotation": True,
    "removal_policy": "destroy",
    "log_retention_days": 14,
    "source_code_bucket": SOURCE_CODE_BUCKET,
    "buckets": data_buckets("dataedu"),
    "external_buckets": event_engine_assets(),
    "jobs": [fetch_demo_data_job(), *demo_crawler_jobs()],
    "triggers": [],
    "parameters": [],
    "tags": {
        "Project": "DataEDU",
        "Module": "DataAnalyst",
    },
}
