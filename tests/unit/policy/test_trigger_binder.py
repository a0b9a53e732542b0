import pytest

from infrastructure.policy.errors import NotFound, PermissionDenied, ValidationError
from infrastructure.policy.models import Binding, BindingState, Capability
from tests.fixtures.policy_builders import PolicyHarness


INVOKE = Capability("j1", frozenset({"invoke"}))
DISABLE = Capability("t1", frozenset({"disable"}))


def test_binding_starts_disabled_and_ignores_fire(harness: PolicyHarness) -> None:
    """
    Given: 기본값으로 생성된 바인딩
    When: 트리거 발화
    Then: DISABLED 상태이므로 잡 미실행
    """
    binding = harness.binder.bind("t1", "j1", "rate(5 minutes)")
    assert binding.binding_id == "t1->j1"
    assert binding.state is BindingState.DISABLED
    assert harness.binder.fire(binding.binding_id) is False
    assert harness.invocations == []


def test_enabled_binding_invokes_job_once(harness: PolicyHarness) -> None:
    harness.grant(INVOKE)
    binding = harness.binder.bind("t1", "j1", "rate(5 minutes)", enabled=True)

    assert harness.binder.fire(binding.binding_id) is True
    assert harness.invocations == [("j1", "t1->j1")]


def test_fire_without_invoke_permission_is_refused(harness: PolicyHarness) -> None:
    harness.binder.bind("t1", "j1", "rate(5 minutes)", enabled=True)
    with pytest.raises(PermissionDenied):
        harness.binder.fire("t1->j1")
    assert harness.invocations == []


def test_self_disable_requires_disable_grant(harness: PolicyHarness) -> None:
    """
    Given: disable 권한이 없는 잡의 ENABLED 바인딩
    When: 잡이 자신의 트리거 비활성화 시도
    Then: PermissionDenied, 상태 유지
    """
    harness.binder.bind("t1", "j1", "rate(5 minutes)", enabled=True)
    with pytest.raises(PermissionDenied):
        harness.binder.self_disable("t1->j1")
    assert harness.binder.get("t1->j1").state is BindingState.ENABLED


def test_self_disable_with_grant_stops_further_invocations(harness: PolicyHarness) -> None:
    """
    Given: invoke/disable 권한이 있는 잡의 ENABLED 바인딩
    When: 한 번 발화 후 스스로 비활성화하고 다시 발화
    Then: 잡은 정확히 한 번만 실행
    """
    harness.grant(INVOKE, DISABLE)
    transitions = []
    harness.binder.add_listener(lambda binding, previous: transitions.append((previous, binding.state)))
    harness.binder.bind("t1", "j1", "rate(5 minutes)", enabled=True)

    assert harness.binder.fire("t1->j1") is True
    harness.binder.self_disable("t1->j1")
    assert harness.binder.fire("t1->j1") is False

    assert harness.invocations == [("j1", "t1->j1")]
    assert transitions == [(BindingState.ENABLED, BindingState.DISABLED)]


def test_repeated_transition_is_a_no_op(harness: PolicyHarness) -> None:
    calls = []
    harness.binder.add_listener(lambda binding, previous: calls.append(binding.state))
    harness.binder.bind("t1", "j1", "rate(5 minutes)")

    harness.binder.enable("t1->j1")
    harness.binder.enable("t1->j1")
    harness.binder.disable("t1->j1")

    assert calls == [BindingState.ENABLED, BindingState.DISABLED]


def test_bind_validates_references(harness: PolicyHarness) -> None:
    with pytest.raises(NotFound):
        harness.binder.bind("missing", "j1", "rate(1 day)")
    with pytest.raises(ValidationError):
        harness.binder.bind("c1", "j1", "rate(1 day)")
    with pytest.raises(ValidationError):
        harness.binder.bind("t1", "c1", "rate(1 day)")
    with pytest.raises(ValidationError):
        harness.binder.bind("t1", "j1", "  ")


def test_duplicate_binding_is_rejected(harness: PolicyHarness) -> None:
    harness.binder.bind("t1", "j1", "rate(1 day)")
    with pytest.raises(ValidationError):
        harness.binder.bind("t1", "j1", "rate(2 days)")


def test_unknown_binding_raises_not_found(harness: PolicyHarness) -> None:
    with pytest.raises(NotFound):
        harness.binder.enable("nope")
    with pytest.raises(NotFound):
        harness.binder.fire("nope")


def test_reachable_jobs_follow_enabled_bindings(harness: PolicyHarness) -> None:
    harness.binder.bind("t1", "j1", "rate(1 day)")
    assert harness.binder.reachable_jobs() == []
    harness.binder.enable("t1->j1")
    assert harness.binder.reachable_jobs() == ["j1"]


def test_failed_listener_rolls_back_the_transition(harness: PolicyHarness) -> None:
    """
    Given: 상태 반영(EventBridge 등)에 실패하는 리스너
    When: 바인딩 활성화
    Then: 예외 전파, 바인딩은 DISABLED로 유지되고 도달 가능한 잡 없음
    """

    def failing_listener(binding, previous) -> None:
        raise RuntimeError("Failed to enable rule")

    harness.binder.add_listener(failing_listener)
    harness.binder.bind("t1", "j1", "rate(5 minutes)")

    with pytest.raises(RuntimeError, match="Failed to enable rule"):
        harness.binder.enable("t1->j1")

    assert harness.binder.get("t1->j1").state is BindingState.DISABLED
    assert harness.binder.reachable_jobs() == []
    assert harness.binder.fire("t1->j1") is False


def test_restore_validates_resource_kinds(harness: PolicyHarness) -> None:
    with pytest.raises(ValidationError, match="not a trigger"):
        harness.binder.restore(Binding("c1->j1", "c1", "j1", "rate(1 day)"))
    with pytest.raises(ValidationError, match="not a compute job"):
        harness.binder.restore(Binding("t1->k1", "t1", "k1", "rate(1 day)"))
    assert harness.binder.bindings == []
