"""Reconciliation of policy automations: launching Ansible jobs for non-compliant clusters."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from fractions import Fraction
from typing import Any, Callable

from policyprop.ansible import DynamicClient, create_ansible_job
from policyprop.api_v1 import KIND, Policy, new_controller_ref
from policyprop.api_v1beta1 import (
    POLICY_AUTOMATION_KIND,
    ClusterEvent,
    PolicyAutomation,
    PolicyAutomationMode,
)
from policyprop.automation_watch import RERUN_ANNOTATION
from policyprop.common import Client, NotFoundError, find_non_compliant_clusters_for_policy
from policyprop.handler import Request

CONTROLLER_NAME = "policy-automation"
SCAN_MODE = "scan"
MANUAL_MODE = "manual"

_log = logging.getLogger(CONTROLLER_NAME)

_UNIT_NANOSECONDS = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_COMPONENT = re.compile(r"(\d*)(?:\.(\d*))?([^\d.]*)")
_MAX_NANOSECONDS = (1 << 63) - 1

_RFC3339 = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(\.\d+)?(Z|[+-]\d{2}:\d{2})"
)
_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``"300ms"``, ``"-1.5h"`` or ``"2h45m"``.

    Every number needs a unit (ns, us, µs, ms, s, m, h); only ``"0"`` may
    stand alone. Raises :class:`ValueError` for anything else.
    """
    original = text
    negative = False
    if text[:1] in ("-", "+"):
        negative = text[0] == "-"
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError(f'invalid duration "{original}"')

    total = Fraction(0)
    position = 0
    while position < len(text):
        match = _COMPONENT.match(text, position)
        whole, fraction, unit = match.group(1), match.group(2), match.group(3)
        if not whole and not fraction:
            raise ValueError(f'invalid duration "{original}"')
        if not unit:
            raise ValueError(f'missing unit in duration "{original}"')
        if unit not in _UNIT_NANOSECONDS:
            raise ValueError(f'unknown unit "{unit}" in duration "{original}"')
        value = Fraction(int(whole or "0"))
        if fraction:
            value += Fraction(int(fraction), 10 ** len(fraction))
        total += value * _UNIT_NANOSECONDS[unit]
        if total > _MAX_NANOSECONDS:
            raise ValueError(f'invalid duration "{original}"')
        position = match.end()

    nanoseconds = int(total)
    if negative:
        nanoseconds = -nanoseconds
    return timedelta(microseconds=nanoseconds / 1000)


def _format_time(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_time(text: str) -> datetime:
    match = _RFC3339.fullmatch(text)
    if match is None:
        raise ValueError(f'cannot parse "{text}" as an RFC 3339 time')
    year, month, day, hour, minute, second = (int(match.group(i)) for i in range(1, 7))
    fraction = match.group(7)
    micro = int((fraction[1:] + "000000")[:6]) if fraction else 0
    zone = match.group(8)
    if zone == "Z":
        tz = timezone.utc
    else:
        sign = -1 if zone[0] == "-" else 1
        tz = timezone(sign * timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6])))
    return datetime(year, month, day, hour, minute, second, micro, tzinfo=tz)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Result:
    """What a reconcile asks of the work queue."""

    requeue: bool = False
    requeue_after: timedelta = timedelta(0)


class PolicyAutomationReconciler:
    """Reconciles policy automations against the compliance of their policies."""

    def __init__(
        self,
        client: Client,
        dynamic_client: DynamicClient,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.client = client
        self.dynamic_client = dynamic_client
        self._clock = clock or _utc_now
        self._counter = 0

    def _now(self) -> datetime:
        return self._clock().astimezone(timezone.utc)

    def _set_owner_references(
        self, automation: PolicyAutomation, policy: Policy
    ) -> PolicyAutomation:
        """Make the policy the sole owner of the automation if it is not an owner yet."""
        if any(ref.uid == policy.metadata.uid for ref in automation.metadata.owner_references):
            return automation
        _log.debug(
            "Setting the owner reference on the PolicyAutomation %s", automation.metadata.name
        )
        automation.metadata.owner_references = [
            new_controller_ref(policy, policy.api_version, policy.kind)
        ]
        return self.client.update(automation)

    def reconcile(self, request: Request) -> Result:
        """Act on the policy automation named by ``request``; raise on failures to retry."""
        try:
            automation = self.client.get(POLICY_AUTOMATION_KIND, request.namespace, request.name)
        except NotFoundError:
            _log.debug("Automation %s was deleted. Nothing to do.", request)
            return Result()

        if not automation.spec.policy_ref:
            _log.info("No policyRef in PolicyAutomation %s. Will ignore it.", request)
            return Result()

        try:
            policy = self.client.get(
                KIND, automation.metadata.namespace, automation.spec.policy_ref
            )
        except NotFoundError:
            _log.info(
                "Policy %s specified in policyRef field not found, doing nothing",
                automation.spec.policy_ref,
            )
            return Result()

        automation = self._set_owner_references(automation, policy)

        if automation.metadata.annotations.get(RERUN_ANNOTATION) == "true":
            _log.info("Creating an Ansible job (mode=%s)", MANUAL_MODE)
            create_ansible_job(automation, self.dynamic_client, MANUAL_MODE, None)
            # The manual run succeeded, so the request for it is dropped.
            del automation.metadata.annotations[RERUN_ANNOTATION]
            self.client.update(automation)
            return Result()

        mode = automation.spec.mode
        if mode == PolicyAutomationMode.DISABLED:
            _log.info("Automation is disabled, doing nothing")
            return Result()
        if policy.spec.disabled:
            _log.info("The policy is disabled. Doing nothing.")
            return Result()

        if mode == SCAN_MODE:
            return self._scan(automation, policy)
        if mode == PolicyAutomationMode.ONCE:
            self._once(automation, policy)
        elif mode == PolicyAutomationMode.EVERY_EVENT:
            return self._every_event(automation, policy)
        return Result()

    def _scan(self, automation: PolicyAutomation, policy: Policy) -> Result:
        try:
            requeue_after = parse_duration(automation.spec.rescan_after)
        except ValueError:
            if automation.spec.rescan_after:
                _log.error("Invalid spec.rescanAfter value %r", automation.spec.rescan_after)
            raise

        targets = find_non_compliant_clusters_for_policy(policy)
        if targets:
            _log.info("Creating an Ansible job for %s", targets)
            create_ansible_job(automation, self.dynamic_client, SCAN_MODE, targets)
        else:
            _log.info("All clusters are compliant. Doing nothing.")

        self._counter += 1
        _log.debug("Requeue after %s (scan %d)", requeue_after, self._counter)
        return Result(requeue_after=requeue_after)

    def _once(self, automation: PolicyAutomation, policy: Policy) -> None:
        targets = find_non_compliant_clusters_for_policy(policy)
        if not targets:
            _log.info("All clusters are compliant. Doing nothing.")
            return
        _log.info("Creating an Ansible job for %s", targets)
        create_ansible_job(
            automation, self.dynamic_client, PolicyAutomationMode.ONCE.value, targets
        )
        automation.spec.mode = PolicyAutomationMode.DISABLED
        self.client.update(automation)

    def _event_time(self, text: str, what: str, cluster: str, events: dict[str, Any]) -> datetime:
        try:
            return _parse_time(text)
        except ValueError:
            _log.error("Failed to retrieve %s in ClustersWithEvent for %s", what, cluster)
            events.pop(cluster, None)
            return _ZERO_TIME

    def _every_event(self, automation: PolicyAutomation, policy: Policy) -> Result:
        targets = find_non_compliant_clusters_for_policy(policy)
        target_set = set(targets)
        trimmed: dict[str, None] = {}
        delay = timedelta(seconds=automation.spec.delay_after_run_seconds)
        requeue_after: timedelta | None = None
        events: dict[str, ClusterEvent] = automation.status.clusters_with_event

        now = self._now()
        now_str = _format_time(now)

        for cluster, event in list(events.items()):
            started = self._event_time(
                event.automation_start_time, "AutomationStartTime", cluster, events
            )
            previous = self._event_time(event.event_time, "EventTime", cluster, events)
            delay_until = started + delay

            if cluster in target_set:
                # Compliant and back to non-compliant since the last run started.
                if delay > timedelta(0) and previous > started:
                    if now > delay_until:
                        events.pop(cluster, None)
                        trimmed[cluster] = None
                    else:
                        remaining = delay_until - now + timedelta(microseconds=1)
                        if requeue_after is None or requeue_after > remaining:
                            requeue_after = remaining
                        event.event_time = now_str
                        events[cluster] = event
            elif delay > timedelta(0) and now < delay_until:
                event.event_time = now_str
                events[cluster] = event
            else:
                events.pop(cluster, None)

        for cluster in targets:
            if cluster not in events:
                trimmed[cluster] = None

        if trimmed:
            trimmed_targets = list(trimmed)
            _log.info("Creating an Ansible job for %s", trimmed_targets)
            create_ansible_job(
                automation,
                self.dynamic_client,
                PolicyAutomationMode.EVERY_EVENT.value,
                trimmed_targets,
            )
            started_str = _format_time(self._now())
            for cluster in trimmed_targets:
                events[cluster] = ClusterEvent(
                    automation_start_time=started_str, event_time=now_str
                )
        else:
            _log.info("All clusters are compliant. No new Ansible job.")

        automation.status.clusters_with_event = events
        self.client.update_status(automation)

        if requeue_after is not None:
            _log.info(
                "Requeue for the new non-compliant event during the delay period of %s",
                delay,
            )
            return Result(requeue_after=requeue_after)
        return Result()