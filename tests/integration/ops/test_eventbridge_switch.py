import boto3
import pytest
from moto import mock_aws

from infrastructure.policy.eventbridge import EventBridgeRuleSwitch
from infrastructure.policy.models import Binding, BindingState
from scripts.ops.toggle_trigger import toggle


RULE = "dataedu-fetch-lms-updates-schedule"
BINDING_ID = f"{RULE}->dataedu-fetch-lms-updates"


def _put_rule(client, state: str = "DISABLED") -> None:
    client.put_rule(Name=RULE, ScheduleExpression="rate(5 minutes)", State=state)


def _state(client) -> str:
    return client.describe_rule(Name=RULE)["State"]


@mock_aws
def test_switch_mirrors_binding_state() -> None:
    """
    Given: DISABLED 상태의 EventBridge 규칙
    When: ENABLED/DISABLED 바인딩 전이 반영
    Then: 규칙 상태가 바인딩을 따라감
    """
    client = boto3.client("events", region_name="us-east-1")
    _put_rule(client)
    switch = EventBridgeRuleSwitch(client)
    binding = Binding(BINDING_ID, RULE, "dataedu-fetch-lms-updates", "rate(5 minutes)", BindingState.ENABLED)

    switch(binding, BindingState.DISABLED)
    assert _state(client) == "ENABLED"
    assert switch.deployed_state(RULE) is BindingState.ENABLED

    switch.apply(Binding(BINDING_ID, RULE, "dataedu-fetch-lms-updates", "rate(5 minutes)"))
    assert _state(client) == "DISABLED"


@mock_aws
def test_missing_rule_surfaces_runtime_error() -> None:
    client = boto3.client("events", region_name="us-east-1")
    with pytest.raises(RuntimeError, match=RULE):
        EventBridgeRuleSwitch(client).deployed_state(RULE)


@mock_aws
def test_toggle_enables_and_job_disables_deployed_trigger() -> None:
    """
    Given: 배포된 DISABLED 규칙
    When: 관리자가 enable 후 잡 권한으로 disable
    Then: 규칙 상태가 ENABLED -> DISABLED로 전이
    """
    client = boto3.client("events", region_name="us-east-1")
    _put_rule(client)

    enabled = toggle("engineer", RULE, "enable", events_client=client)
    assert enabled["bindings"] == [{"binding": BINDING_ID, "previous": "DISABLED", "state": "ENABLED"}]
    assert _state(client) == "ENABLED"

    disabled = toggle("engineer", RULE, "disable", as_job=True, events_client=client)
    assert disabled["bindings"] == [{"binding": BINDING_ID, "previous": "ENABLED", "state": "DISABLED"}]
    assert _state(client) == "DISABLED"


@mock_aws
def test_toggle_refuses_self_disable_without_grant() -> None:
    from infrastructure.policy.errors import PermissionDenied

    client = boto3.client("events", region_name="us-east-1")
    client.put_rule(Name="dataedu-start-crawlers-schedule", ScheduleExpression="rate(1 day)", State="ENABLED")

    with pytest.raises(PermissionDenied):
        toggle("scientist", "dataedu-start-crawlers-schedule", "disable", as_job=True, events_client=client)
    assert client.describe_rule(Name="dataedu-start-crawlers-schedule")["State"] == "ENABLED"
