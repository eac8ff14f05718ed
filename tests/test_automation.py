from datetime import datetime, timedelta, timezone

import pytest

from policyprop.api_v1 import (
    KIND,
    CompliancePerClusterStatus,
    ObjectMeta,
    Policy,
    PolicySpec,
    PolicyStatus,
)
from policyprop.api_v1beta1 import (
    POLICY_AUTOMATION_KIND,
    AutomationDef,
    ClusterEvent,
    PolicyAutomation,
    PolicyAutomationSpec,
    PolicyAutomationStatus,
)
from policyprop.automation import PolicyAutomationReconciler, Result, parse_duration
from policyprop.common import Client
from policyprop.handler import Request

NS = "policy-propagator-test"
NOW = datetime(2022, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
NOW_STR = "2022-06-01T12:00:00Z"


class RecordingDynamicClient:
    def __init__(self, fail=False):
        self.jobs = []
        self.fail = fail

    def create(self, resource, namespace, obj):
        if self.fail:
            raise RuntimeError("create failed")
        self.jobs.append((resource, namespace, obj))
        return obj


def make_policy(states=(), disabled=False):
    return Policy(
        metadata=ObjectMeta(name="case5-test-policy", namespace=NS, uid="policy-uid"),
        spec=PolicySpec(disabled=disabled),
        status=PolicyStatus(
            status=[
                CompliancePerClusterStatus(compliance_state=state, cluster_name=name)
                for name, state in states
            ]
        ),
    )


def make_automation(mode, policy_ref="case5-test-policy", annotations=None, **spec):
    return PolicyAutomation(
        metadata=ObjectMeta(
            name="create-service-now-ticket",
            namespace=NS,
            uid="automation-uid",
            annotations=dict(annotations or {}),
        ),
        spec=PolicyAutomationSpec(
            policy_ref=policy_ref,
            mode=mode,
            automation=AutomationDef(name="Demo Job Template", tower_secret="secret"),
            **spec,
        ),
    )


def setup(automation, policy, fail=False):
    client = Client([automation, policy] if policy is not None else [automation])
    dynamic = RecordingDynamicClient(fail=fail)
    reconciler = PolicyAutomationReconciler(client, dynamic, clock=lambda: NOW)
    return reconciler, client, dynamic


REQUEST = Request(NS, "create-service-now-ticket")
BOTH_NON_COMPLIANT = [("managed1", "NonCompliant"), ("managed2", "NonCompliant")]


def stored_automation(client):
    return client.get(POLICY_AUTOMATION_KIND, NS, "create-service-now-ticket")


def test_parse_duration_values():
    assert parse_duration("1h") == timedelta(hours=1)
    assert parse_duration("0") == timedelta(0)
    assert parse_duration("300ms") == timedelta(milliseconds=300)


def test_parse_duration_combined_components_are_summed():
    assert parse_duration("90s") == parse_duration("1m30s")
    assert parse_duration("-1.5h") == -parse_duration("1.5h")


@pytest.mark.parametrize("text", ["", "5", "1x", "abc", "-", "."])
def test_parse_duration_rejects_bad_text(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_missing_automation_does_nothing():
    reconciler, _, dynamic = setup(make_automation("once"), make_policy())
    result = reconciler.reconcile(Request(NS, "other"))
    assert result == Result()
    assert dynamic.jobs == []


def test_empty_policy_ref_is_ignored():
    reconciler, client, dynamic = setup(make_automation("once", policy_ref=""), make_policy())
    assert reconciler.reconcile(REQUEST) == Result()
    assert dynamic.jobs == []
    assert stored_automation(client).metadata.owner_references == []


def test_missing_policy_does_nothing():
    reconciler, _, dynamic = setup(make_automation("once"), None)
    assert reconciler.reconcile(REQUEST) == Result()
    assert dynamic.jobs == []


def test_owner_reference_is_set_to_policy():
    reconciler, client, _ = setup(make_automation("disabled"), make_policy())
    reconciler.reconcile(REQUEST)
    refs = stored_automation(client).metadata.owner_references
    assert len(refs) == 1
    assert refs[0].name == "case5-test-policy"
    assert refs[0].uid == "policy-uid"
    assert refs[0].kind == KIND
    assert refs[0].controller is True


def test_manual_rerun_creates_job_and_removes_annotation():
    automation = make_automation(
        "disabled", annotations={"policy.open-cluster-management.io/rerun": "true"}
    )
    reconciler, client, dynamic = setup(automation, make_policy(BOTH_NON_COMPLIANT))
    assert reconciler.reconcile(REQUEST) == Result()
    assert len(dynamic.jobs) == 1
    _, namespace, job = dynamic.jobs[0]
    assert namespace == NS
    assert job["metadata"]["generateName"] == "create-service-now-ticket-manual-"
    assert "target_clusters" not in job["spec"]["extra_vars"]
    annotations = stored_automation(client).metadata.annotations
    assert "policy.open-cluster-management.io/rerun" not in annotations


def test_disabled_mode_creates_no_job():
    reconciler, _, dynamic = setup(make_automation("disabled"), make_policy(BOTH_NON_COMPLIANT))
    assert reconciler.reconcile(REQUEST) == Result()
    assert dynamic.jobs == []


def test_disabled_policy_creates_no_job():
    policy = make_policy(BOTH_NON_COMPLIANT, disabled=True)
    reconciler, _, dynamic = setup(make_automation("once"), policy)
    assert reconciler.reconcile(REQUEST) == Result()
    assert dynamic.jobs == []


def test_scan_mode_requeues_and_targets_non_compliant():
    automation = make_automation("scan", rescan_after="10m")
    policy = make_policy([("managed1", "NonCompliant"), ("managed2", "Compliant")])
    reconciler, _, dynamic = setup(automation, policy)
    result = reconciler.reconcile(REQUEST)
    assert result.requeue_after == timedelta(minutes=10)
    assert len(dynamic.jobs) == 1
    job = dynamic.jobs[0][2]
    assert job["spec"]["extra_vars"]["target_clusters"] == ["managed1"]
    assert job["metadata"]["generateName"] == "create-service-now-ticket-scan-"


def test_scan_mode_invalid_rescan_raises():
    automation = make_automation("scan", rescan_after="soon")
    reconciler, _, dynamic = setup(automation, make_policy(BOTH_NON_COMPLIANT))
    with pytest.raises(ValueError):
        reconciler.reconcile(REQUEST)
    assert dynamic.jobs == []


def test_once_mode_creates_job_and_disables():
    reconciler, client, dynamic = setup(make_automation("once"), make_policy(BOTH_NON_COMPLIANT))
    assert reconciler.reconcile(REQUEST) == Result()
    assert len(dynamic.jobs) == 1
    job = dynamic.jobs[0][2]
    assert job["spec"]["extra_vars"]["target_clusters"] == ["managed1", "managed2"]
    assert job["spec"]["job_template_name"] == "Demo Job Template"
    assert stored_automation(client).spec.mode == "disabled"


def test_once_mode_compliant_keeps_mode():
    policy = make_policy([("managed1", "Compliant")])
    reconciler, client, dynamic = setup(make_automation("once"), policy)
    reconciler.reconcile(REQUEST)
    assert dynamic.jobs == []
    assert stored_automation(client).spec.mode == "once"


def test_once_mode_job_failure_propagates():
    automation = make_automation("once")
    reconciler, client, _ = setup(automation, make_policy(BOTH_NON_COMPLIANT), fail=True)
    with pytest.raises(RuntimeError):
        reconciler.reconcile(REQUEST)
    assert stored_automation(client).spec.mode == "once"


def test_every_event_records_events_for_new_targets():
    automation = make_automation("everyEvent")
    reconciler, client, dynamic = setup(automation, make_policy(BOTH_NON_COMPLIANT))
    assert reconciler.reconcile(REQUEST) == Result()
    assert len(dynamic.jobs) == 1
    assert dynamic.jobs[0][2]["spec"]["extra_vars"]["target_clusters"] == [
        "managed1",
        "managed2",
    ]
    events = stored_automation(client).status.clusters_with_event
    assert set(events) == {"managed1", "managed2"}
    assert events["managed1"] == ClusterEvent(NOW_STR, NOW_STR)


def test_every_event_does_not_repeat_for_ongoing_non_compliance():
    automation = make_automation("everyEvent")
    reconciler, client, dynamic = setup(automation, make_policy(BOTH_NON_COMPLIANT))
    reconciler.reconcile(REQUEST)
    reconciler.reconcile(REQUEST)
    assert len(dynamic.jobs) == 1
    assert set(stored_automation(client).status.clusters_with_event) == {
        "managed1",
        "managed2",
    }


def test_every_event_removes_event_when_compliant_without_delay():
    automation = make_automation("everyEvent")
    automation.status = PolicyAutomationStatus({"managed1": ClusterEvent(NOW_STR, NOW_STR)})
    policy = make_policy([("managed1", "Compliant")])
    reconciler, client, dynamic = setup(automation, policy)
    assert reconciler.reconcile(REQUEST) == Result()
    assert dynamic.jobs == []
    assert stored_automation(client).status.clusters_with_event == {}


def test_every_event_within_delay_requeues_without_job():
    automation = make_automation("everyEvent", delay_after_run_seconds=240)
    started = "2022-06-01T11:58:20Z"
    event = "2022-06-01T11:59:10Z"
    automation.status = PolicyAutomationStatus({"managed1": ClusterEvent(started, event)})
    reconciler, client, dynamic = setup(automation, make_policy([("managed1", "NonCompliant")]))
    result = reconciler.reconcile(REQUEST)
    assert dynamic.jobs == []
    remaining = datetime(2022, 6, 1, 11, 58, 20, tzinfo=timezone.utc) + timedelta(
        seconds=240
    ) - NOW
    assert remaining < result.requeue_after <= remaining + timedelta(milliseconds=1)
    stored = stored_automation(client).status.clusters_with_event["managed1"]
    assert stored.automation_start_time == started
    assert stored.event_time == NOW_STR


def test_every_event_after_delay_creates_new_job():
    automation = make_automation("everyEvent", delay_after_run_seconds=240)
    started = "2022-06-01T11:55:59Z"
    event = "2022-06-01T11:57:00Z"
    automation.status = PolicyAutomationStatus({"managed1": ClusterEvent(started, event)})
    reconciler, client, dynamic = setup(automation, make_policy([("managed1", "NonCompliant")]))
    assert reconciler.reconcile(REQUEST) == Result()
    assert len(dynamic.jobs) == 1
    assert dynamic.jobs[0][2]["spec"]["extra_vars"]["target_clusters"] == ["managed1"]
    stored = stored_automation(client).status.clusters_with_event["managed1"]
    assert stored == ClusterEvent(NOW_STR, NOW_STR)


def test_every_event_compliant_within_delay_keeps_event():
    automation = make_automation("everyEvent", delay_after_run_seconds=240)
    started = "2022-06-01T11:59:00Z"
    automation.status = PolicyAutomationStatus({"managed1": ClusterEvent(started, started)})
    reconciler, client, dynamic = setup(automation, make_policy([("managed1", "Compliant")]))
    assert reconciler.reconcile(REQUEST) == Result()
    assert dynamic.jobs == []
    stored = stored_automation(client).status.clusters_with_event["managed1"]
    assert stored.automation_start_time == started
    assert stored.event_time == NOW_STR


def test_every_event_unparsable_event_is_replaced():
    automation = make_automation("everyEvent")
    automation.status = PolicyAutomationStatus(
        {"managed1": ClusterEvent("not-a-timestamp", "not-a-timestamp")}
    )
    reconciler, client, dynamic = setup(automation, make_policy([("managed1", "NonCompliant")]))
    reconciler.reconcile(REQUEST)
    assert len(dynamic.jobs) == 1
    stored = stored_automation(client).status.clusters_with_event
    assert stored == {"managed1": ClusterEvent(NOW_STR, NOW_STR)}