"""Event filters and mapping that decide which policy automations get reconciled."""

from __future__ import annotations

import logging
from typing import Any, Callable

from policyprop.api_v1 import Policy
from policyprop.api_v1beta1 import POLICY_AUTOMATION_KIND, PolicyAutomationMode
from policyprop.common import ROOT_POLICY_LABEL, Client
from policyprop.handler import Predicate, Request, UpdateEvent

RERUN_ANNOTATION = "policy.open-cluster-management.io/rerun"

_log = logging.getLogger(__name__)


def _automation_updated(event: UpdateEvent) -> bool:
    new, old = event.object_new, event.object_old
    if not new.spec.policy_ref:
        return False
    if new.metadata.annotations.get(RERUN_ANNOTATION) == "true":
        return True
    return new.spec != old.spec


POLICY_AUTOMATION_PREDICATE = Predicate(
    create_func=lambda e: bool(e.object.spec.policy_ref),
    update_func=_automation_updated,
    delete_func=lambda e: False,
)


def _policy_updated(event: UpdateEvent) -> bool:
    if ROOT_POLICY_LABEL in event.object_new.metadata.labels:
        return False
    return event.object_new.status.compliance_state != event.object_old.status.compliance_state


POLICY_PREDICATE = Predicate(
    create_func=lambda e: False,
    update_func=_policy_updated,
    delete_func=lambda e: False,
)


def policy_mapper(client: Client) -> Callable[[Any], list[Request]]:
    """Return a function mapping a policy to the automation that refers to it."""

    def to_requests(policy: Policy) -> list[Request]:
        try:
            automations = client.list(POLICY_AUTOMATION_KIND, policy.metadata.namespace)
        except Exception:
            _log.exception("Failed to list the policy automations")
            return []

        automation = next(
            (a for a in automations if a.spec.policy_ref == policy.metadata.name), None
        )
        if automation is None:
            return []
        if automation.spec.mode in (PolicyAutomationMode.ONCE, PolicyAutomationMode.EVERY_EVENT):
            return [Request(automation.metadata.namespace, automation.metadata.name)]
        return []

    return to_requests