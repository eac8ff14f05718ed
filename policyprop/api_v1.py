"""Resource types of the policy.open-cluster-management.io/v1 API group."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


@dataclass(frozen=True)
class GroupVersion:
    """An API group together with one of its versions."""

    group: str
    version: str

    def api_version(self) -> str:
        """Return the value used in an object's ``apiVersion`` field."""
        return f"{self.group}/{self.version}" if self.group else self.version


GROUP = "policy.open-cluster-management.io"
GROUP_VERSION = GroupVersion(GROUP, "v1")
SCHEME_GROUP_VERSION = GROUP_VERSION

KIND = "Policy"
POLICY_SET_KIND = "PolicySet"
PLACEMENT_BINDING_KIND = "PlacementBinding"


class RemediationAction(str, Enum):
    """Whether a policy enforces its templates or only reports on them."""

    ENFORCE = "Enforce"
    INFORM = "Inform"


class ComplianceState(str, Enum):
    """Compliance of a policy on a cluster."""

    COMPLIANT = "Compliant"
    NON_COMPLIANT = "NonCompliant"


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _is_empty(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, (str, list, dict, tuple)):
        return len(value) == 0
    return isinstance(value, (int, float)) and value == 0


def _omit_empty(data: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if not _is_empty(value)}


@dataclass
class OwnerReference:
    """A reference from a dependent object to the object that owns it."""

    api_version: str
    kind: str
    name: str
    uid: str
    controller: bool = False
    block_owner_deletion: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OwnerReference:
        return cls(
            api_version=data.get("apiVersion", ""),
            kind=data.get("kind", ""),
            name=data.get("name", ""),
            uid=data.get("uid", ""),
            controller=bool(data.get("controller", False)),
            block_owner_deletion=bool(data.get("blockOwnerDeletion", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "uid": self.uid,
        }
        if self.controller:
            result["controller"] = True
        if self.block_owner_deletion:
            result["blockOwnerDeletion"] = True
        return result


@dataclass
class ObjectMeta:
    """Metadata that every persisted resource carries."""

    name: str = ""
    namespace: str = ""
    uid: str = ""
    resource_version: str = ""
    generate_name: str = ""
    creation_timestamp: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    owner_references: list[OwnerReference] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> ObjectMeta:
        data = data or {}
        return cls(
            name=data.get("name", ""),
            namespace=data.get("namespace", ""),
            uid=data.get("uid", ""),
            resource_version=data.get("resourceVersion", ""),
            generate_name=data.get("generateName", ""),
            creation_timestamp=data.get("creationTimestamp") or "",
            labels=dict(data.get("labels") or {}),
            annotations=dict(data.get("annotations") or {}),
            owner_references=[
                OwnerReference.from_dict(ref) for ref in data.get("ownerReferences") or []
            ],
        )

    def to_dict(self) -> dict[str, Any]:
        return _omit_empty(
            {
                "name": self.name,
                "namespace": self.namespace,
                "uid": self.uid,
                "resourceVersion": self.resource_version,
                "generateName": self.generate_name,
                "creationTimestamp": self.creation_timestamp,
                "labels": dict(self.labels),
                "annotations": dict(self.annotations),
                "ownerReferences": [ref.to_dict() for ref in self.owner_references],
            }
        )


def new_controller_ref(owner: Any, api_version: str, kind: str) -> OwnerReference:
    """Build an owner reference that marks ``owner`` as the managing controller."""
    return OwnerReference(
        api_version=api_version,
        kind=kind,
        name=owner.metadata.name,
        uid=owner.metadata.uid,
        controller=True,
        block_owner_deletion=True,
    )


@dataclass
class Subject:
    """A policy or policy set that a placement binding binds."""

    api_group: str
    kind: str
    name: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Subject:
        return cls(data.get("apiGroup", ""), data.get("kind", ""), data.get("name", ""))

    def to_dict(self) -> dict[str, Any]:
        return {"apiGroup": self.api_group, "kind": self.kind, "name": self.name}


@dataclass
class PlacementSubject:
    """The placement or placement rule that a placement binding refers to."""

    api_group: str
    kind: str
    name: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> PlacementSubject:
        data = data or {}
        return cls(data.get("apiGroup", ""), data.get("kind", ""), data.get("name", ""))

    def to_dict(self) -> dict[str, Any]:
        return {"apiGroup": self.api_group, "kind": self.kind, "name": self.name}


@dataclass
class PlacementBinding:
    """Binds policies or policy sets to a placement."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    placement_ref: PlacementSubject = field(
        default_factory=lambda: PlacementSubject("", "", "")
    )
    subjects: list[Subject] = field(default_factory=list)
    api_version: str = GROUP_VERSION.api_version()
    kind: str = PLACEMENT_BINDING_KIND

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PlacementBinding:
        return cls(
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            placement_ref=PlacementSubject.from_dict(data.get("placementRef")),
            subjects=[Subject.from_dict(s) for s in data.get("subjects") or []],
            api_version=data.get("apiVersion") or GROUP_VERSION.api_version(),
            kind=data.get("kind") or PLACEMENT_BINDING_KIND,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
            "placementRef": self.placement_ref.to_dict(),
            "subjects": [s.to_dict() for s in self.subjects],
            "status": {},
        }


@dataclass
class PolicyTemplate:
    """A template for a policy object delivered to managed clusters."""

    object_definition: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PolicyTemplate:
        return cls(copy.deepcopy(dict(data.get("objectDefinition") or {})))

    def to_dict(self) -> dict[str, Any]:
        return {"objectDefinition": copy.deepcopy(self.object_definition)}


@dataclass
class PolicySpec:
    """Desired state of a policy."""

    disabled: bool = False
    remediation_action: str = ""
    policy_templates: list[PolicyTemplate] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> PolicySpec:
        data = data or {}
        return cls(
            disabled=bool(data.get("disabled", False)),
            remediation_action=data.get("remediationAction", ""),
            policy_templates=[
                PolicyTemplate.from_dict(t) for t in data.get("policy-templates") or []
            ],
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"disabled": self.disabled}
        if self.remediation_action:
            result["remediationAction"] = _plain(self.remediation_action)
        result["policy-templates"] = [t.to_dict() for t in self.policy_templates]
        return result


@dataclass
class PlacementDecision:
    """A cluster chosen by a placement."""

    cluster_name: str = ""
    cluster_namespace: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PlacementDecision:
        return cls(data.get("clusterName", ""), data.get("clusterNamespace", ""))

    def to_dict(self) -> dict[str, Any]:
        return _omit_empty(
            {"clusterName": self.cluster_name, "clusterNamespace": self.cluster_namespace}
        )


@dataclass
class Placement:
    """Placement results recorded on a root policy."""

    placement_binding: str = ""
    placement_rule: str = ""
    placement: str = ""
    decisions: list[PlacementDecision] = field(default_factory=list)
    policy_set: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Placement:
        return cls(
            placement_binding=data.get("placementBinding", ""),
            placement_rule=data.get("placementRule", ""),
            placement=data.get("placement", ""),
            decisions=[PlacementDecision.from_dict(d) for d in data.get("decisions") or []],
            policy_set=data.get("policySet", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return _omit_empty(
            {
                "placementBinding": self.placement_binding,
                "placementRule": self.placement_rule,
                "placement": self.placement,
                "decisions": [d.to_dict() for d in self.decisions],
                "policySet": self.policy_set,
            }
        )


@dataclass
class CompliancePerClusterStatus:
    """Compliance of a root policy on one cluster."""

    compliance_state: str = ""
    cluster_name: str = ""
    cluster_namespace: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CompliancePerClusterStatus:
        return cls(
            compliance_state=data.get("compliant", ""),
            cluster_name=data.get("clustername", ""),
            cluster_namespace=data.get("clusternamespace", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return _omit_empty(
            {
                "compliant": _plain(self.compliance_state),
                "clustername": self.cluster_name,
                "clusternamespace": self.cluster_namespace,
            }
        )


@dataclass
class ComplianceHistory:
    """One entry of a template's compliance history."""

    last_timestamp: str = ""
    message: str = ""
    event_name: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ComplianceHistory:
        return cls(
            last_timestamp=data.get("lastTimestamp") or "",
            message=data.get("message", ""),
            event_name=data.get("eventName", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return _omit_empty(
            {
                "lastTimestamp": self.last_timestamp,
                "message": self.message,
                "eventName": self.event_name,
            }
        )


@dataclass
class DetailsPerTemplate:
    """Compliance details and history of one policy template."""

    template_meta: ObjectMeta = field(default_factory=ObjectMeta)
    compliance_state: str = ""
    history: list[ComplianceHistory] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DetailsPerTemplate:
        return cls(
            template_meta=ObjectMeta.from_dict(data.get("templateMeta")),
            compliance_state=data.get("compliant", ""),
            history=[ComplianceHistory.from_dict(h) for h in data.get("history") or []],
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"templateMeta": self.template_meta.to_dict()}
        result.update(
            _omit_empty(
                {
                    "compliant": _plain(self.compliance_state),
                    "history": [h.to_dict() for h in self.history],
                }
            )
        )
        return result


@dataclass
class PolicyStatus:
    """Observed state of a policy."""

    placement: list[Placement] = field(default_factory=list)
    status: list[CompliancePerClusterStatus] = field(default_factory=list)
    compliance_state: str = ""
    details: list[DetailsPerTemplate] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> PolicyStatus:
        data = data or {}
        return cls(
            placement=[Placement.from_dict(p) for p in data.get("placement") or []],
            status=[CompliancePerClusterStatus.from_dict(s) for s in data.get("status") or []],
            compliance_state=data.get("compliant", ""),
            details=[DetailsPerTemplate.from_dict(d) for d in data.get("details") or []],
        )

    def to_dict(self) -> dict[str, Any]:
        return _omit_empty(
            {
                "placement": [p.to_dict() for p in self.placement],
                "status": [s.to_dict() for s in self.status],
                "compliant": _plain(self.compliance_state),
                "details": [d.to_dict() for d in self.details],
            }
        )


@dataclass
class Policy:
    """A governance policy, either a root policy or a replica of one."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: PolicySpec = field(default_factory=PolicySpec)
    status: PolicyStatus = field(default_factory=PolicyStatus)
    api_version: str = GROUP_VERSION.api_version()
    kind: str = KIND

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Policy:
        return cls(
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            spec=PolicySpec.from_dict(data.get("spec")),
            status=PolicyStatus.from_dict(data.get("status")),
            api_version=data.get("apiVersion") or GROUP_VERSION.api_version(),
            kind=data.get("kind") or KIND,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
            "spec": self.spec.to_dict(),
            "status": self.status.to_dict(),
        }