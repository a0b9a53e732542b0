import itertools
import threading

import pytest

from infrastructure.policy.errors import NotFound, ValidationError
from infrastructure.policy.models import Capability, Condition, Decision, Principal
from infrastructure.policy.resolver import PolicyResolver, combine
from infrastructure.policy.models import Effect
from tests.fixtures.policy_builders import allow_rule, build_catalog, deny_rule


def test_default_deny_without_rules() -> None:
    """
    Given: 규칙이 없는 리졸버
    When: 임의 요청 평가
    Then: DENY (기본 거부)
    """
    resolver = PolicyResolver(build_catalog())
    assert resolver.evaluate("p1", "c1", "read") is Decision.DENY


def test_allow_rule_grants_access() -> None:
    resolver = PolicyResolver(build_catalog(), [allow_rule("AllowRead")])
    assert resolver.evaluate("p1", "c1", "read") is Decision.ALLOW
    assert resolver.evaluate("p1", "c1", "write") is Decision.DENY
    assert resolver.evaluate("p2", "c1", "read") is Decision.DENY


def test_deny_overrides_allow() -> None:
    """
    Given: 같은 요청에 매칭되는 ALLOW와 DENY
    When: 평가
    Then: DENY 우선
    """
    resolver = PolicyResolver(build_catalog(), [allow_rule("AllowRead"), deny_rule("DenyRead")])
    evaluation = resolver.explain("p1", "c1", "read")
    assert evaluation.decision is Decision.DENY
    assert evaluation.matched_allows == ("AllowRead",)
    assert evaluation.matched_denies == ("DenyRead",)


def test_any_principal_deny_applies_to_every_principal() -> None:
    resolver = PolicyResolver(
        build_catalog(),
        [allow_rule("AllowAll", principals=("*",)), deny_rule("DenyAnyone", principals=("*",))],
    )
    for who in ("p1", "p2", Principal.any()):
        assert resolver.evaluate(who, "c1", "read") is Decision.DENY


def test_conditions_gate_allow_rules() -> None:
    """
    Given: StringEquals 조건이 달린 ALLOW
    When: 조건 값 유무에 따라 평가
    Then: 조건이 충족될 때만 ALLOW
    """
    rule = allow_rule("AllowTagged", conditions=(Condition("StringEquals", "team", ("blue",)),))
    resolver = PolicyResolver(build_catalog(), [rule])
    assert resolver.evaluate("p1", "c1", "read") is Decision.DENY
    assert resolver.evaluate("p1", "c1", "read", {"team": "red"}) is Decision.DENY
    assert resolver.evaluate("p1", "c1", "read", {"team": "blue"}) is Decision.ALLOW


def test_rule_order_never_changes_the_decision() -> None:
    """
    Given: 조건부 ALLOW/DENY가 섞인 규칙 집합
    When: 모든 순열로 리졸버를 구성해 여러 요청 평가
    Then: 결정이 순서와 무관하게 동일
    """
    rules = [
        allow_rule("A1", actions=("read", "list")),
        allow_rule("A2", principals=("p*",), actions=("write",)),
        deny_rule("D1", actions=("write",), conditions=(Condition("StringNotEquals", "mode", ("kms",)),)),
        deny_rule("D2", principals=("*",), actions=("list",), conditions=(Condition("Null", "tag", ("true",)),)),
    ]
    requests = [
        ("p1", "read", {}),
        ("p1", "list", {}),
        ("p1", "list", {"tag": "x"}),
        ("p1", "write", {}),
        ("p1", "write", {"mode": "kms"}),
        ("p9", "write", {"mode": "kms"}),
        ("p9", "read", {}),
    ]
    expected = None
    for ordering in itertools.permutations(rules):
        resolver = PolicyResolver(build_catalog(), ordering)
        decisions = [resolver.evaluate(who, "c1", action, ctx) for who, action, ctx in requests]
        if expected is None:
            expected = decisions
        assert decisions == expected
    assert expected == [
        Decision.ALLOW,
        Decision.DENY,
        Decision.ALLOW,
        Decision.DENY,
        Decision.ALLOW,
        Decision.ALLOW,
        Decision.DENY,
    ]


def test_unknown_resource_raises_not_found() -> None:
    resolver = PolicyResolver(build_catalog(), [allow_rule("AllowAny", resources=("*",))])
    with pytest.raises(NotFound):
        resolver.evaluate("p1", "nope", "read")


def test_duplicate_sid_with_different_content_is_rejected() -> None:
    resolver = PolicyResolver(build_catalog(), [allow_rule("Same")])
    resolver.add_rules([allow_rule("Same")])
    with pytest.raises(ValidationError):
        resolver.add_rules([allow_rule("Same", actions=("write",))])


def test_combine_precedence() -> None:
    assert combine([]) is Decision.DENY
    assert combine([Effect.ALLOW]) is Decision.ALLOW
    assert combine([Effect.ALLOW, Effect.DENY]) is Decision.DENY


@pytest.mark.parametrize(
    "operator, values, context, expected",
    [
        ("StringEquals", ("a",), {}, False),
        ("StringEquals", ("a",), {"k": "a"}, True),
        ("StringNotEquals", ("a",), {}, True),
        ("StringNotEquals", ("a",), {"k": "a"}, False),
        ("StringLike", ("a*",), {"k": "abc"}, True),
        ("StringNotLike", ("a*",), {"k": "abc"}, False),
        ("StringEqualsIfExists", ("a",), {}, True),
        ("StringEqualsIfExists", ("a",), {"k": "b"}, False),
        ("StringNotEqualsIfExists", ("a",), {"k": "b"}, True),
        ("StringNotEqualsIfExists", ("a",), {}, True),
        ("StringNotEqualsIfExists", ("a",), {"k": "a"}, False),
        ("StringNotLikeIfExists", ("a*",), {}, True),
        ("StringLikeIfExists", ("a*",), {}, True),
        ("Null", ("true",), {}, True),
        ("Null", ("false",), {}, False),
        ("Null", ("false",), {"k": "x"}, True),
    ],
)
def test_condition_operators(operator, values, context, expected) -> None:
    assert Condition(operator, "k", values).evaluate(context) is expected


def test_unsupported_condition_operator_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Condition("NumericEquals", "k", ("1",))
    with pytest.raises(ValidationError):
        Condition("NullIfExists", "k", ("true",))


def test_grants_participate_in_resolution(harness) -> None:
    harness.grant(Capability("c1", frozenset({"read"})))
    assert harness.resolver.evaluate("p1", "c1", "read") is Decision.ALLOW
    harness.resolver.remove_grant("j1:c1:read")
    assert harness.resolver.evaluate("p1", "c1", "read") is Decision.DENY
    with pytest.raises(NotFound):
        harness.resolver.remove_grant("j1:c1:read")


def test_evaluations_run_concurrently_with_updates() -> None:
    """
    Given: 평가 중인 여러 스레드
    When: 다른 스레드가 규칙을 추가
    Then: 예외 없이 모든 평가가 완료
    """
    resolver = PolicyResolver(build_catalog(), [allow_rule("Base")])
    errors = []

    def reader() -> None:
        try:
            for _ in range(200):
                resolver.evaluate("p1", "c1", "read")
        except Exception as exc:  # pragma: no cover - surfaced by the assertion
            errors.append(exc)

    threads = [threading.Thread(target=reader) for _ in range(4)]
    for thread in threads:
        thread.start()
    for i in range(50):
        resolver.add_rules([allow_rule(f"Extra{i}", actions=("list",))])
    for thread in threads:
        thread.join()

    assert not errors
    assert len(resolver.rules) == 51
