"""Data scientist event-engine module configuration."""

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

scientist_config = {
    "account_id": os.environ.get("CDK_DEFAULT_ACCOUNT"),
    "region": os.environ.get("CDK_DEFAULT_REGION", DEFAULT_REGION),
    "stack_name": "DataEduDataScientistEeStack",
    "team_id": "0123456789abcdefdatascientist000",
    "team_id_description": "Unique ID of this Team",
    "key_alias": DATA_KEY_ALIAS,
    "key_description": "KMS key to encrypt objects in the dataEDU S3 buckets.",
    "key_pending_window_days": 7,
    "enable_key_rotation": True,
    "removal_policy": "destroy",
    "log_retention_days": 7,
    "source_code_bucket": SOURCE_CODE_BUCKET,
    "buckets": data_buckets("dataedu-ds"),
    "external_buckets": event_engine_assets(),
    "jobs": [
        fetch_demo_data_job(),
        *demo_crawler_jobs(),
        {
            "name": "dataedu-start-crawlers",
            "type": "function",
            "description": "Lambda function that starts the SIS and LMS demo crawlers.",
            "handler": "dataedu_start_crawlers.lambda_handler",
            "runtime": "python3.12",
            "memory": 128,
            "timeout": 60,
            "code_key": "modules/cfdd4f678e99415a9c1f11342a3a9887/v1/lambda/dataedu_start_crawlers.zip",
            "environment": {
                "CRAWLER_NAMES": "dataedu-sisdemo-crawler,dataedu-lmsdemo-crawler",
            },
            "capabilities": [
                {"resource": "dataedu-sisdemo-crawler", "actions": ["invoke"]},
                {"resource": "dataedu-lmsdemo-crawler", "actions": ["invoke"]},
            ],
        },
    ],
    "triggers": [
        {
            "name": "dataedu-start-crawlers-schedule",
            "job": "dataedu-start-crawlers",
            "schedule": "rate(1 day)",
            "enabled": False,
            "description": "Daily crawl of the raw bucket; enabled from the runbook.",
        },
    ],
    "parameters": [],
    "tags": {
        "Project": "DataEDU",
        "Module": "DataScientist",
    },
}
