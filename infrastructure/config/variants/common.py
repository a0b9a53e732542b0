"""Job and bucket definitions shared by every stack variant."""

from __future__ import annotations

from typing import List

from infrastructure.config.types import BucketConfig, CapabilityConfig, ExternalBucketConfig, JobConfig


DEFAULT_REGION = "us-east-1"
DATA_KEY_ALIAS = "dataedu-key"

# Lambda source bundles live in the event-engine assets account
SOURCE_CODE_BUCKET = "ee-assets-prod-123456abcdefghijklmnopqrstuvwxyz-{region}"
FETCH_DEMO_DATA_CODE_KEY = "modules/cfdd4f678e99415a9c1f11342a3a9887/v1/lambda/dataedu_fetch_demo_data.zip"


def data_buckets(prefix: str) -> List[BucketConfig]:
    """Raw, curated and results buckets named ``{prefix}-<layer>-``."""
    return [
        {"name": "raw", "prefix": f"{prefix}-raw-", "description": "Raw data landing zone"},
        {"name": "curated", "prefix": f"{prefix}-curated-", "description": "Curated data"},
        {"name": "results", "prefix": f"{prefix}-results-", "description": "Query results"},
    ]


def event_engine_assets() -> List[ExternalBucketConfig]:
    return [{"name": "ee-assets", "bucket_name": "ee-assets-prod-{region}"}]


def fetch_demo_data_job() -> JobConfig:
    """Copies the SIS/LMS demo data from the assets bucket into the raw bucket."""
    return {
        "name": "dataedu-fetch-demo-data",
        "type": "function",
        "description": "Lambda function that fetches demo data from source data bucket and "
        "copies the data objects to raw data bucket.",
        "handler": "dataedu_fetch_demo_data.lambda_handler",
        "runtime": "python3.12",
        "memory": 256,
        "timeout": 600,
        "code_key": FETCH_DEMO_DATA_CODE_KEY,
        "environment": {
            "SOURCE_DATA_BUCKET_NAME_PREFIX": "ee-assets-prod-",
            "SIS_DEMO_MOCK_DATA_PREFIX": "modules/f7ff818991a14cfb80e2617aad4431d1/v1/mockdata/sis_demo_parquet/",
            "LMS_DEMO_MOCK_DATA_PREFIX": "modules/cfdd4f678e99415a9c1f11342a3a9887/v1/mockdata/lms_demo/v1/",
            "SIS_DEMO_RAW_DATA_PREFIX": "sisdb/sisdemo/",
            "LMS_DEMO_RAW_DATA_PREFIX": "lmsapi/",
        },
        "bucket_environment": {"RAW_DATA_BUCKET_NAME": "raw"},
        "capabilities": [
            {"resource": "ee-assets", "actions": ["list", "read"]},
            {"resource": "raw", "actions": ["list", "read"]},
            {"resource": "raw", "actions": ["write"], "encrypted": True},
            {"resource": "raw", "actions": ["delete"]},
            {"resource": "data-key", "actions": ["encrypt", "decrypt"]},
        ],
    }


def _read_raw_capabilities() -> List[CapabilityConfig]:
    return [
        {"resource": "raw", "actions": ["list", "read"]},
        {"resource": "data-key", "actions": ["decrypt"]},
    ]


def demo_crawler_jobs() -> List[JobConfig]:
    """Crawlers creating the db_raw_sisdemo and db_raw_lmsdemo tables."""
    return [
        {
            "name": "dataedu-sisdemo-crawler",
            "type": "crawler",
            "description": "SIS demo data crawler.",
            "database": "db_raw_sisdemo",
            "targets": [{"bucket": "raw", "prefix": "sisdb/sisdemo/"}],
            "capabilities": _read_raw_capabilities(),
        },
        {
            "name": "dataedu-lmsdemo-crawler",
            "type": "crawler",
            "description": "LMS demo data crawler.",
            "database": "db_raw_lmsdemo",
            "targets": [{"bucket": "raw", "prefix": "lmsapi/"}],
            "capabilities": _read_raw_capabilities(),
        },
    ]
