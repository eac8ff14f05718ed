"""Creation of the Ansible jobs that policy automations launch."""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass
from typing import Any, Iterable, Protocol

from policyprop.api_v1 import new_controller_ref
from policyprop.api_v1beta1 import PolicyAutomation

ANSIBLE_JOB_API_VERSION = "tower.ansible.com/v1alpha1"
ANSIBLE_JOB_KIND = "AnsibleJob"


@dataclass(frozen=True)
class GroupVersionResource:
    """Identifies a resource type on the API server."""

    group: str
    version: str
    resource: str


ANSIBLE_JOB_RESOURCE = GroupVersionResource("tower.ansible.com", "v1alpha1", "ansiblejobs")


class DynamicClient(Protocol):
    def create(self, resource: GroupVersionResource, namespace: str, obj: dict[str, Any]) -> Any: ...


def _extra_vars(raw: Any) -> dict[str, Any]:
    if isinstance(raw, (str, bytes, bytearray)):
        raw = json.loads(raw)
    if not isinstance(raw, dict):
        raise ValueError("extra_vars must be a JSON object")
    return copy.deepcopy(raw)


def build_ansible_job(
    policy_automation: PolicyAutomation,
    mode: str,
    target_clusters: Iterable[str] | None,
) -> dict[str, Any]:
    """Build the AnsibleJob object for a policy automation run in ``mode``."""
    automation = policy_automation.spec.automation
    extra_vars: dict[str, Any] = {}
    if automation.extra_vars is not None:
        extra_vars = _extra_vars(automation.extra_vars)
    if target_clusters is not None:
        extra_vars["target_clusters"] = list(target_clusters)

    owner = new_controller_ref(
        policy_automation, policy_automation.api_version, policy_automation.kind
    )
    return {
        "apiVersion": ANSIBLE_JOB_API_VERSION,
        "kind": ANSIBLE_JOB_KIND,
        "metadata": {
            # The tower API requires lower case names.
            "generateName": f"{policy_automation.metadata.name}-{mode}-".lower(),
            "ownerReferences": [owner.to_dict()],
        },
        "spec": {
            "job_template_name": automation.name,
            "tower_auth_secret": automation.tower_secret,
            "extra_vars": extra_vars,
        },
    }


def create_ansible_job(
    policy_automation: PolicyAutomation,
    dynamic_client: DynamicClient,
    mode: str,
    target_clusters: Iterable[str] | None,
) -> Any:
    """Create an AnsibleJob in the automation's namespace and return what the client returns."""
    job = build_ansible_job(policy_automation, mode, target_clusters)
    return dynamic_client.create(
        ANSIBLE_JOB_RESOURCE, policy_automation.metadata.namespace, job
    )