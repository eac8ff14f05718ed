"""Resource types of the policy.open-cluster-management.io/v1beta1 API group."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from policyprop.api_v1 import GROUP, GroupVersion, ObjectMeta

GROUP_VERSION = GroupVersion(GROUP, "v1beta1")

POLICY_AUTOMATION_KIND = "PolicyAutomation"
POLICY_SET_KIND = "PolicySet"


class PolicyAutomationMode(str, Enum):
    """How a policy automation is triggered."""

    ONCE = "once"
    EVERY_EVENT = "everyEvent"
    DISABLED = "disabled"


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


@dataclass
class AutomationDef:
    """The automation to invoke."""

    name: str = ""
    tower_secret: str = ""
    type: str = ""
    extra_vars: Any = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> AutomationDef:
        data = data or {}
        return cls(
            name=data.get("name", ""),
            tower_secret=data.get("secret", ""),
            type=data.get("type", ""),
            extra_vars=copy.deepcopy(data.get("extra_vars")),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.type:
            result["type"] = self.type
        result["name"] = self.name
        if self.extra_vars is not None:
            result["extra_vars"] = copy.deepcopy(self.extra_vars)
        result["secret"] = self.tower_secret
        return result


@dataclass
class ClusterEvent:
    """Automation timestamps recorded for one target cluster."""

    automation_start_time: str = ""
    event_time: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ClusterEvent:
        return cls(data.get("automationStartTime", ""), data.get("eventTime", ""))

    def to_dict(self) -> dict[str, Any]:
        return {"automationStartTime": self.automation_start_time, "eventTime": self.event_time}


@dataclass
class PolicyAutomationSpec:
    """Desired state of a policy automation."""

    policy_ref: str = ""
    mode: str = ""
    event_hook: str = ""
    rescan_after: str = ""
    delay_after_run_seconds: int = 0
    automation: AutomationDef = field(default_factory=AutomationDef)

    def __post_init__(self) -> None:
        if self.delay_after_run_seconds < 0:
            raise ValueError("delayAfterRunSeconds must not be negative")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> PolicyAutomationSpec:
        data = data or {}
        return cls(
            policy_ref=data.get("policyRef", ""),
            mode=data.get("mode", ""),
            event_hook=data.get("eventHook", ""),
            rescan_after=data.get("rescanAfter", ""),
            delay_after_run_seconds=int(data.get("delayAfterRunSeconds") or 0),
            automation=AutomationDef.from_dict(data.get("automationDef")),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"policyRef": self.policy_ref, "mode": _plain(self.mode)}
        if self.event_hook:
            result["eventHook"] = self.event_hook
        if self.rescan_after:
            result["rescanAfter"] = self.rescan_after
        if self.delay_after_run_seconds:
            result["delayAfterRunSeconds"] = self.delay_after_run_seconds
        result["automationDef"] = self.automation.to_dict()
        return result


@dataclass
class PolicyAutomationStatus:
    """Observed state of a policy automation, keyed by cluster name."""

    clusters_with_event: dict[str, ClusterEvent] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> PolicyAutomationStatus:
        data = data or {}
        return cls(
            {
                name: ClusterEvent.from_dict(event)
                for name, event in (data.get("clustersWithEvent") or {}).items()
            }
        )

    def to_dict(self) -> dict[str, Any]:
        if not self.clusters_with_event:
            return {}
        return {
            "clustersWithEvent": {
                name: event.to_dict() for name, event in self.clusters_with_event.items()
            }
        }


@dataclass
class PolicyAutomation:
    """Links a policy to an automation run when the policy becomes non-compliant."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: PolicyAutomationSpec = field(default_factory=PolicyAutomationSpec)
    status: PolicyAutomationStatus = field(default_factory=PolicyAutomationStatus)
    api_version: str = GROUP_VERSION.api_version()
    kind: str = POLICY_AUTOMATION_KIND

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PolicyAutomation:
        return cls(
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            spec=PolicyAutomationSpec.from_dict(data.get("spec")),
            status=PolicyAutomationStatus.from_dict(data.get("status")),
            api_version=data.get("apiVersion") or GROUP_VERSION.api_version(),
            kind=data.get("kind") or POLICY_AUTOMATION_KIND,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
            "spec": self.spec.to_dict(),
            "status": self.status.to_dict(),
        }


@dataclass
class PolicySetSpec:
    """Desired state of a policy set."""

    policies: list[str] = field(default_factory=list)
    description: str = ""

    def __post_init__(self) -> None:
        if any(not name for name in self.policies):
            raise ValueError("policy set entries must not be empty")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> PolicySetSpec:
        data = data or {}
        if data.get("policies") is None:
            raise ValueError("policy set spec requires a policies list")
        return cls(policies=list(data["policies"]), description=data.get("description", ""))

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.description:
            result["description"] = self.description
        result["policies"] = list(self.policies)
        return result


@dataclass
class PolicySetStatusPlacement:
    """A placement reported in a policy set's status."""

    placement_binding: str = ""
    placement: str = ""
    placement_rule: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PolicySetStatusPlacement:
        return cls(
            placement_binding=data.get("placementBinding", ""),
            placement=data.get("placement", ""),
            placement_rule=data.get("placementRule", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        items = {
            "placementBinding": self.placement_binding,
            "placement": self.placement,
            "placementRule": self.placement_rule,
        }
        return {key: value for key, value in items.items() if value}


@dataclass
class PolicySetStatus:
    """Observed state of a policy set."""

    placement: list[PolicySetStatusPlacement] = field(default_factory=list)
    compliant: str = ""
    status_message: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> PolicySetStatus:
        data = data or {}
        return cls(
            placement=[PolicySetStatusPlacement.from_dict(p) for p in data.get("placement") or []],
            compliant=data.get("compliant", ""),
            status_message=data.get("statusMessage", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.placement:
            result["placement"] = [p.to_dict() for p in self.placement]
        if self.compliant:
            result["compliant"] = _plain(self.compliant)
        if self.status_message:
            result["statusMessage"] = self.status_message
        return result


@dataclass
class PolicySet:
    """A named group of policies that are placed together."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: PolicySetSpec = field(default_factory=PolicySetSpec)
    status: PolicySetStatus = field(default_factory=PolicySetStatus)
    api_version: str = GROUP_VERSION.api_version()
    kind: str = POLICY_SET_KIND

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PolicySet:
        return cls(
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            spec=PolicySetSpec.from_dict(data.get("spec")),
            status=PolicySetStatus.from_dict(data.get("status")),
            api_version=data.get("apiVersion") or GROUP_VERSION.api_version(),
            kind=data.get("kind") or POLICY_SET_KIND,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
            "spec": self.spec.to_dict(),
            "status": self.status.to_dict(),
        }