"""Helpers shared by the policy controllers, and the object store they work against."""

from __future__ import annotations

import copy
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, TypeVar

from policyprop.api_v1 import (
    GROUP,
    KIND,
    POLICY_SET_KIND,
    ComplianceState,
    PlacementBinding,
    Policy,
)

API_GROUP = GROUP
CLUSTER_NAME_LABEL = API_GROUP + "/cluster-name"
CLUSTER_NAMESPACE_LABEL = API_GROUP + "/cluster-namespace"
ROOT_POLICY_LABEL = API_GROUP + "/root-policy"

T = TypeVar("T")


class NotFoundError(LookupError):
    """Raised when a requested object does not exist."""

    def __init__(self, kind: str, namespace: str, name: str) -> None:
        super().__init__(f'{kind} "{name}" not found in namespace "{namespace}"')
        self.kind = kind
        self.namespace = namespace
        self.name = name


def _key(obj: Any) -> tuple[str, str, str]:
    return (obj.kind, obj.metadata.namespace, obj.metadata.name)


def _merge_patch(target: Any, patch: Any) -> Any:
    """Apply a JSON merge patch to ``target`` and return the result."""
    if not isinstance(patch, Mapping):
        return copy.deepcopy(patch)
    result = dict(target) if isinstance(target, Mapping) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = _merge_patch(result.get(key), value)
    return result


class Client:
    """An in-memory store of API objects keyed by kind, namespace and name.

    Stored objects need a ``kind`` and a ``metadata`` with ``namespace`` and
    ``name``. Every object handed out is a copy, so callers never change the
    store by mutating what they got back.
    """

    def __init__(self, objects: Iterable[Any] = ()) -> None:
        self._objects: dict[tuple[str, str, str], Any] = {}
        for obj in objects:
            self._objects[_key(obj)] = copy.deepcopy(obj)

    def get(self, kind: str, namespace: str, name: str) -> Any:
        """Return a copy of the named object or raise :class:`NotFoundError`."""
        try:
            return copy.deepcopy(self._objects[(kind, namespace, name)])
        except KeyError:
            raise NotFoundError(kind, namespace, name) from None

    def list(self, kind: str, namespace: str | None = None) -> list[Any]:
        """Return copies of all objects of ``kind``, optionally in one namespace."""
        return [
            copy.deepcopy(obj)
            for (obj_kind, obj_namespace, _), obj in sorted(self._objects.items())
            if obj_kind == kind and (namespace is None or obj_namespace == namespace)
        ]

    def _stored(self, obj: Any) -> Any:
        key = _key(obj)
        if key not in self._objects:
            raise NotFoundError(*key)
        return self._objects[key]

    def update(self, obj: Any) -> Any:
        """Replace an object; its stored status is kept as it was."""
        stored = self._stored(obj)
        new = copy.deepcopy(obj)
        if hasattr(stored, "status"):
            new.status = copy.deepcopy(stored.status)
        self._objects[_key(obj)] = new
        return copy.deepcopy(new)

    def update_status(self, obj: Any) -> Any:
        """Replace only the status of an object."""
        stored = copy.deepcopy(self._stored(obj))
        stored.status = copy.deepcopy(obj.status)
        self._objects[_key(obj)] = stored
        return copy.deepcopy(stored)

    def patch(self, kind: str, namespace: str, name: str, patch: Mapping[str, Any]) -> Any:
        """Apply a JSON merge patch to the named object."""
        key = (kind, namespace, name)
        if key not in self._objects:
            raise NotFoundError(*key)
        stored = self._objects[key]
        patched = type(stored).from_dict(_merge_patch(stored.to_dict(), patch))
        self._objects[key] = patched
        return copy.deepcopy(patched)


def _name_of(cluster: Any) -> str:
    return cluster if isinstance(cluster, str) else cluster.metadata.name


def is_in_cluster_namespace(ns: str, all_clusters: Iterable[Any]) -> bool:
    """Tell whether ``ns`` is the namespace of one of the managed clusters."""
    return any(ns == _name_of(cluster) for cluster in all_clusters)


def full_name_for_policy(plc: Policy) -> str:
    """Return the fully qualified name ``<namespace>.<name>`` of a policy."""
    return f"{plc.metadata.namespace}.{plc.metadata.name}"


def labels_for_root_policy(plc: Policy) -> dict[str, str]:
    """Return the labels that tie a replicated policy to its root policy."""
    return {ROOT_POLICY_LABEL: full_name_for_policy(plc)}


def compare_spec_and_annotation(plc1: Policy, plc2: Policy) -> bool:
    """Tell whether two policies have the same annotations and spec."""
    return plc1.metadata.annotations == plc2.metadata.annotations and plc1.spec == plc2.spec


def _binds_kind(pb: PlacementBinding, kind: str) -> bool:
    return any(
        subject.kind == kind and subject.api_group == API_GROUP for subject in pb.subjects
    )


def is_pb_for_policy(pb: PlacementBinding) -> bool:
    """Tell whether a placement binding has a policy among its subjects."""
    return _binds_kind(pb, KIND)


def is_pb_for_policy_set(pb: PlacementBinding) -> bool:
    """Tell whether a placement binding has a policy set among its subjects."""
    return _binds_kind(pb, POLICY_SET_KIND)


def find_non_compliant_clusters_for_policy(plc: Policy) -> list[str]:
    """Return the clusters on which a root policy is non-compliant, in status order."""
    return [
        status.cluster_name
        for status in plc.status.status
        if status.compliance_state == ComplianceState.NON_COMPLIANT
    ]


@dataclass
class RetryOptions:
    """How :func:`retry` repeats a failing call.

    ``attempts`` of zero retries until the call succeeds. Waits grow
    exponentially from ``delay``, get up to ``max_jitter`` seconds added and
    are capped at ``max_delay`` when that is positive.
    """

    attempts: int = 10
    delay: float = 0.1
    max_delay: float = 0.0
    max_jitter: float = 0.1
    on_retry: Callable[[int, BaseException], None] | None = None
    sleep: Callable[[float], None] = time.sleep


def get_retry_options(logger: logging.Logger, retry_msg: str, attempts: int) -> RetryOptions:
    """Return reasonable options for :func:`retry` that log ``retry_msg`` on failures."""
    return RetryOptions(
        attempts=attempts,
        delay=2.0,
        max_delay=10.0,
        on_retry=lambda n, err: logger.info(retry_msg),
    )


def _backoff(options: RetryOptions, attempt: int) -> float:
    wait = options.delay * float(2 ** min(attempt, 62))
    if options.max_jitter > 0:
        wait += random.uniform(0, options.max_jitter)
    if options.max_delay > 0:
        wait = min(wait, options.max_delay)
    return wait


def retry(func: Callable[[], T], options: RetryOptions | None = None) -> T:
    """Call ``func`` until it succeeds or the attempts run out; re-raise the last error."""
    options = options or RetryOptions()
    attempt = 0
    while True:
        try:
            return func()
        except Exception as err:
            if options.on_retry is not None:
                options.on_retry(attempt, err)
            if options.attempts and attempt >= options.attempts - 1:
                raise
            options.sleep(_backoff(options, attempt))
            attempt += 1


def get_num_workers(list_length: int, concurrency_per_policy: int) -> int:
    """Return how many workers to use for ``list_length`` concurrent tasks."""
    return min(list_length, concurrency_per_policy)