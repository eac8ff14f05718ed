# policyprop

`policyprop` models governance policies, placement bindings, policy sets and policy
automations. It also decides when an Ansible job should be launched for clusters on
which a policy is not compliant. It has no dependencies outside the standard library.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

- `policyprop.api_v1` holds the policy resources. These are `Policy` with `PolicySpec`,
  `PolicyTemplate` and `PolicyStatus`, and the status parts `Placement`,
  `PlacementDecision`, `CompliancePerClusterStatus`, `DetailsPerTemplate` and
  `ComplianceHistory`. It also holds the `RemediationAction` and `ComplianceState`
  enums, `ObjectMeta` and `OwnerReference`, and `PlacementBinding` with its `Subject` and
  `PlacementSubject`. `GroupVersion.api_version()` gives an `apiVersion` string, and
  `new_controller_ref` builds a controller owner reference. The resources convert to and
  from the plain mapping form of an object through `from_dict` and `to_dict`. Empty
  optional fields are left out when a resource is written back.
- `policyprop.api_v1beta1` holds `PolicyAutomation` with `PolicyAutomationSpec`,
  `AutomationDef`, `PolicyAutomationStatus` and `ClusterEvent`, and the
  `PolicyAutomationMode` enum (`once`, `everyEvent`, `disabled`). It also holds
  `PolicySet` with `PolicySetSpec`, `PolicySetStatus` and `PolicySetStatusPlacement`.
  A negative `delay_after_run_seconds` raises `ValueError`. So does a policy set spec
  with an empty policy name, or with no `policies` list in its mapping form.
- `policyprop.common` has `Client`, an in-memory object store keyed by kind, namespace
  and name. It offers `get`, `list`, `update` (which keeps the stored status),
  `update_status` and `patch` (a JSON merge patch). It raises `NotFoundError` for
  missing objects and always hands out copies. The module also has these policy helpers:
  `full_name_for_policy`, `labels_for_root_policy`, `compare_spec_and_annotation`,
  `is_pb_for_policy`, `is_pb_for_policy_set`, `is_in_cluster_namespace`,
  `find_non_compliant_clusters_for_policy` and `get_num_workers`. `retry` repeats a
  failing call with exponential backoff and jitter, and re-raises the last error.
  `get_retry_options` returns a `RetryOptions` that starts at 2 s, caps waits at 10 s and
  logs a message on each failure.
- `policyprop.handler` has the watch events `CreateEvent`, `UpdateEvent`, `DeleteEvent`
  and `GenericEvent`. It also has the `Predicate` filter, where a missing function lets
  events through, and `NEVER_ENQUEUE`, which lets no event through.
  `EnqueueRequestsFromMapFunc` maps an event's object to `Request` values and adds them
  to a queue. On updates it maps only the new object.
- `policyprop.ansible` builds AnsibleJob objects from a `PolicyAutomation` with
  `build_ansible_job`. `create_ansible_job` hands such a job to a dynamic client, which
  is any object with a `create(resource, namespace, obj)` method. The job carries the
  automation's `extra_vars`, which may be given as a mapping or as JSON text, and the
  target clusters under `target_clusters`. It is owned by the automation.
- `policyprop.automation_watch` has the filters `POLICY_AUTOMATION_PREDICATE` and
  `POLICY_PREDICATE`. It also has `policy_mapper(client)`, which maps a policy to the
  automation that refers to it, and only when that automation's mode is `once` or
  `everyEvent`.
- `policyprop.automation` has `PolicyAutomationReconciler(client, dynamic_client,
  clock=None)`. Its `reconcile(request)` method first makes the policy the owner of the
  automation. It then acts on:
  - the `policy.open-cluster-management.io/rerun` annotation, which starts a manual run
    and then removes the annotation;
  - `once`, which runs for the non-compliant clusters and then switches the mode to
    `disabled`;
  - `everyEvent`, which runs for newly non-compliant clusters and tracks them in the
    status, honouring the `delayAfterRunSeconds` window;
  - `scan`, which runs and requeues after `rescanAfter`.

  It does nothing when the automation is `disabled` or the policy is disabled. It returns
  a `Result` with `requeue_after`. `parse_duration` reads durations such as `"2h45m"` or
  `"300ms"` and raises `ValueError` for invalid text.

## Example

```python
from policyprop.api_v1 import Policy
from policyprop.api_v1beta1 import PolicyAutomation
from policyprop.automation import PolicyAutomationReconciler
from policyprop.common import Client, find_non_compliant_clusters_for_policy
from policyprop.handler import Request

policy = Policy.from_dict({
    "metadata": {"name": "my-policy", "namespace": "default"},
    "spec": {"disabled": False, "policy-templates": []},
    "status": {"status": [
        {"clustername": "managed1", "compliant": "NonCompliant"},
        {"clustername": "managed2", "compliant": "Compliant"},
    ]},
})
print(find_non_compliant_clusters_for_policy(policy))   # ['managed1']

automation = PolicyAutomation.from_dict({
    "metadata": {"name": "create-ticket", "namespace": "default"},
    "spec": {
        "policyRef": "my-policy",
        "mode": "once",
        "automationDef": {"name": "ticket-template", "secret": "placeholder"},
    },
})


class Jobs:
    def __init__(self):
        self.created = []

    def create(self, resource, namespace, obj):
        self.created.append(obj)
        return obj


client = Client([policy, automation])
jobs = Jobs()
PolicyAutomationReconciler(client, jobs).reconcile(Request("default", "create-ticket"))

print(jobs.created[0]["spec"]["extra_vars"])   # {'target_clusters': ['managed1']}
print(client.get("PolicyAutomation", "default", "create-ticket").spec.mode.value)  # disabled
```

## What it does not do

The package has no command-line program and does not talk to a cluster's API server. Its
`Client` is an in-memory store, and there is no manager or watch loop that feeds events
to the predicates and handlers. Jobs are only created through the dynamic client you
pass in. The package does not copy root policies into cluster namespaces, and it does not
manage encryption keys.