import json

import pytest

from infrastructure.policy import CompiledPolicy, manifest
from infrastructure.policy.encryption import APPROVED_MODE, CLEARTEXT_MODE, EncryptionGate
from infrastructure.policy.errors import ConflictError, NotFound, ValidationError
from infrastructure.policy.models import Decision


def test_manifest_round_trip_is_lossless(engineer_policy: CompiledPolicy) -> None:
    """
    Given: 컴파일된 engineer 정책
    When: 매니페스트로 직렬화 후 복원
    Then: 복원된 정책의 매니페스트가 원본과 동일
    """
    text = manifest.dumps(engineer_policy.state())
    rebuilt = CompiledPolicy.from_state(manifest.loads(text))

    assert manifest.dumps(rebuilt.state()) == text
    assert rebuilt.variant == "engineer"


def test_rebuilt_policy_evaluates_like_the_original(engineer_policy: CompiledPolicy) -> None:
    rebuilt = CompiledPolicy.from_state(manifest.loads(manifest.dumps(engineer_policy.state())))
    requests = [
        ("dataedu-fetch-demo-data-role", "raw", "read"),
        ("dataedu-fetch-demo-data-role", "curated", "read"),
        ("dataedu-fetch-lms-updates-role", "lms-cursor", "write"),
        ("dataedu-fetch-lms-updates-role", "dataedu-fetch-lms-updates-schedule", "disable"),
        ("dataedu-sisdemo-crawler-role", "raw", "write"),
    ]
    for principal, resource, action in requests:
        assert rebuilt.resolver.evaluate(principal, resource, action) is engineer_policy.resolver.evaluate(
            principal, resource, action
        )


def test_rebuilt_policy_evaluates_encrypted_writes_like_the_original(engineer_policy: CompiledPolicy) -> None:
    """
    Given: 조건이 붙은 쓰기 grant와 게이트 거부 규칙을 가진 engineer 정책
    When: 매니페스트 복원 후 다양한 암호화 헤더로 쓰기 평가
    Then: 원본과 같은 결정 (준수/헤더만 허용, 다른 키/평문 거부)
    """
    rebuilt = CompiledPolicy.from_state(manifest.loads(manifest.dumps(engineer_policy.state())))
    key_arn = engineer_policy.catalog.get("data-key").arn
    other_key = "arn:aws:kms:us-east-1:111122223333:alias/other"
    samples = [
        (EncryptionGate.write_context(APPROVED_MODE, key_arn), Decision.ALLOW),
        (EncryptionGate.write_context(APPROVED_MODE), Decision.ALLOW),
        (EncryptionGate.write_context(APPROVED_MODE, other_key), Decision.DENY),
        (EncryptionGate.write_context(CLEARTEXT_MODE), Decision.DENY),
        (EncryptionGate.write_context(None), Decision.DENY),
    ]
    for principal in ("dataedu-fetch-demo-data-role", "dataedu-fetch-lms-updates-role"):
        for context, expected in samples:
            original = engineer_policy.resolver.evaluate(principal, "raw", "write", context)
            assert original is expected
            assert rebuilt.resolver.evaluate(principal, "raw", "write", context) is original
    crawler = rebuilt.resolver.evaluate("dataedu-sisdemo-crawler-role", "raw", "write", samples[0][0])
    assert crawler is Decision.DENY


def test_manifest_write_and_read(tmp_path, analyst_policy: CompiledPolicy) -> None:
    path = manifest.write(analyst_policy.state(), tmp_path / "out" / "policy.json")
    state = manifest.read(path)
    data = json.loads(path.read_text(encoding="utf-8"))

    assert data["format_version"] == manifest.FORMAT_VERSION
    assert {r["id"] for r in data["resources"]} >= {"raw", "curated", "results", "data-key"}
    assert len(state.grants) == len(analyst_policy.resolver.grants)


def test_unsupported_format_version_is_rejected(analyst_policy: CompiledPolicy) -> None:
    data = analyst_policy.state().to_dict()
    data["format_version"] = 2
    with pytest.raises(ValidationError, match="format_version"):
        manifest.loads(json.dumps(data))


def test_invalid_json_is_rejected() -> None:
    with pytest.raises(ValidationError):
        manifest.loads("{not json")
    with pytest.raises(ValidationError):
        manifest.loads("[]")


def test_manifest_missing_gate_rule_fails_verification(analyst_policy: CompiledPolicy) -> None:
    """
    Given: raw 버킷의 키 거부 규칙을 제거한 매니페스트
    When: 정책 복원
    Then: ValidationError
    """
    state = analyst_policy.state()
    state.rules = [r for r in state.rules if r.sid != "raw:DenyUnapprovedEncryptionKey"]
    with pytest.raises(ValidationError, match="raw:DenyUnapprovedEncryptionKey"):
        CompiledPolicy.from_state(state)


def test_manifest_grant_on_unknown_resource_fails(analyst_policy: CompiledPolicy) -> None:
    data = analyst_policy.state().to_dict()
    data["grants"][0]["resource"] = "ghost"
    with pytest.raises(NotFound):
        CompiledPolicy.from_state(manifest.PolicyState.from_dict(data))


def test_manifest_preserves_binding_state(engineer_policy: CompiledPolicy) -> None:
    engineer_policy.binder.enable("dataedu-fetch-lms-updates-schedule->dataedu-fetch-lms-updates")
    rebuilt = CompiledPolicy.from_state(manifest.loads(manifest.dumps(engineer_policy.state())))

    assert rebuilt.binder.reachable_jobs() == ["dataedu-fetch-lms-updates"]
    assert rebuilt.resolver.evaluate(
        "dataedu-fetch-lms-updates-role", "dataedu-fetch-lms-updates", "invoke"
    ) is Decision.ALLOW


def test_manifest_grant_always_blocked_by_gate_is_rejected(analyst_policy: CompiledPolicy) -> None:
    """
    Given: 암호화 조건을 지운 raw 쓰기 grant가 담긴 매니페스트
    When: 정책 복원
    Then: 컴파일 때와 같이 ConflictError
    """
    data = analyst_policy.state().to_dict()
    write_grant = next(g for g in data["grants"] if g["resource"] == "raw" and g["actions"] == ["write"])
    write_grant["conditions"] = []
    with pytest.raises(ConflictError, match="raw:DenyUnapprovedEncryptionMode"):
        CompiledPolicy.from_state(manifest.PolicyState.from_dict(data))


def test_manifest_binding_must_link_trigger_to_job(engineer_policy: CompiledPolicy) -> None:
    data = engineer_policy.state().to_dict()
    data["bindings"][0]["trigger"] = "raw"
    with pytest.raises(ValidationError, match="not a trigger"):
        CompiledPolicy.from_state(manifest.PolicyState.from_dict(data))

    data = engineer_policy.state().to_dict()
    data["bindings"][0]["job"] = "lms-cursor"
    with pytest.raises(ValidationError, match="not a compute job"):
        CompiledPolicy.from_state(manifest.PolicyState.from_dict(data))
