import os
import sys
from pathlib import Path
from typing import Iterator

import pytest

# Ensure project root is importable at collection time (scripts/ and tests/ are namespace packages)
_repo_root = Path(__file__).resolve().parents[1]
_repo_root_str = str(_repo_root)
if _repo_root_str not in sys.path:
    sys.path.insert(0, _repo_root_str)

from infrastructure.config.variants import get_variant_config  # noqa: E402
from infrastructure.policy import CompiledPolicy, compile_policy  # noqa: E402


pytest_plugins = [
    "tests.fixtures.policy_builders",
]


@pytest.fixture(autouse=True)
def aws_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Ensure default AWS region is set for moto/boto3 clients and clear cross-test env leaks.

    Variant configs read CDK_DEFAULT_* at import time, so the account is left
    unset here and region defaults stay deterministic.
    """
    monkeypatch.setenv("AWS_REGION", os.environ.get("AWS_REGION", "us-east-1"))
    monkeypatch.setenv("AWS_DEFAULT_REGION", os.environ.get("AWS_DEFAULT_REGION", "us-east-1"))
    # Provide dummy credentials so botocore signing doesn't fail under moto
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", os.environ.get("AWS_ACCESS_KEY_ID", "testing"))
    monkeypatch.setenv(
        "AWS_SECRET_ACCESS_KEY",
        os.environ.get("AWS_SECRET_ACCESS_KEY", "testing"),
    )
    monkeypatch.setenv("AWS_SESSION_TOKEN", os.environ.get("AWS_SESSION_TOKEN", "testing"))

    # Variant tagging in log records must not leak between tests
    monkeypatch.delenv("DATAEDU_VARIANT", raising=False)
    yield


@pytest.fixture
def analyst_policy() -> CompiledPolicy:
    return compile_policy(get_variant_config("analyst"), "analyst")


@pytest.fixture
def engineer_policy() -> CompiledPolicy:
    return compile_policy(get_variant_config("engineer"), "engineer")


@pytest.fixture
def scientist_policy() -> CompiledPolicy:
    return compile_policy(get_variant_config("scientist"), "scientist")
