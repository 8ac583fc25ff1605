"""Events on the owning service, and the XPN swallow-and-notify bridge.

When a firewall change needs a Shared VPC host project admin, failing the
reconcile would only make the control loop retry a call that cannot succeed.
The remediation command is recorded as an event on the service instead.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol

from .models import FirewallParams, ServiceRef
from .reconciler import FirewallAction, FirewallReconciler
from .xpn import FirewallXPNError

logger = logging.getLogger(__name__)

XPN_EVENT_REASON = "XPN"


class EventType(str, Enum):
    """Kubernetes-style event types."""

    NORMAL = "Normal"
    WARNING = "Warning"


class EventSink(Protocol):
    """Records human readable events against an owning object."""

    def event(self, owner: ServiceRef, event_type: EventType, reason: str, message: str) -> None: ...


class LoggingEventSink:
    """EventSink writing events as structured log records."""

    def __init__(self, logger_name: str = "l4firewall.events") -> None:
        self._logger = logging.getLogger(logger_name)

    def event(self, owner: ServiceRef, event_type: EventType, reason: str, message: str) -> None:
        level = logging.WARNING if event_type is EventType.WARNING else logging.INFO
        self._logger.log(
            level,
            message,
            extra={
                "event_type": event_type.value,
                "reason": reason,
                "involved_object": owner.key,
            },
        )


def ensure_firewall(
    reconciler: FirewallReconciler,
    owner: ServiceRef,
    params: FirewallParams,
    shared: bool,
    sink: EventSink,
) -> FirewallAction | None:
    """Ensure a rule for owner, reporting XPN failures as an event.

    Returns:
        The action taken, or None when the change was handed to the
        network owner through an event.

    Raises:
        Any error from the reconciler other than FirewallXPNError.
    """
    try:
        return reconciler.ensure_rule(owner.key, params, shared)
    except FirewallXPNError as e:
        sink.event(owner, EventType.NORMAL, XPN_EVENT_REASON, e.message)
        return None


def ensure_firewall_for_health_check(
    reconciler: FirewallReconciler,
    owner: ServiceRef,
    params: FirewallParams,
    shared: bool,
    sink: EventSink,
) -> FirewallAction | None:
    """Ensure the health check rule, which may be shared between services."""
    return ensure_firewall(reconciler, owner, params, shared, sink)


def ensure_firewall_for_nodes(
    reconciler: FirewallReconciler,
    owner: ServiceRef,
    params: FirewallParams,
    sink: EventSink,
) -> FirewallAction | None:
    """Ensure the rule admitting load balancer traffic to nodes. Never shared."""
    return ensure_firewall(reconciler, owner, params, False, sink)
