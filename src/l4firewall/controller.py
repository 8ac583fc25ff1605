"""Control loop driving firewall reconciliation.

Every tick the loop:
1. Loads the declarative firewall spec from disk
2. Ensures the node and health check rules of every service
3. Ensures every rule listed under deletedRules is gone
4. Waits for the next interval or a shutdown signal

A failure on one rule is recorded and the remaining rules still run. Failed
rules are retried on the next tick, never within one.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .config import Config
from .events import (
    EventSink,
    ensure_firewall_for_health_check,
    ensure_firewall_for_nodes,
)
from .models import FirewallParams, NetworkInfo, ServiceRef
from .provider import FirewallProviderError
from .reconciler import FirewallAction, FirewallReconciler
from .spec_loader import SpecLoadError, load_spec
from .tags import TagResolutionError
from .xpn import FirewallXPNError

logger = logging.getLogger(__name__)


# (owner key, rule name). Deleted rules have no owner and use an empty owner key.
RuleKey = tuple[str, str]


def rule_label(key: RuleKey) -> str:
    owner, name = key
    return f"{name} ({owner})" if owner else name


@dataclass
class ReconcileResult:
    """Result of a single reconciliation pass.

    Outcomes are keyed per owner, so a health check rule shared by several
    services is reported once for each of them.
    """

    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    actions: dict[RuleKey, FirewallAction] = field(default_factory=dict)
    xpn_notified: list[RuleKey] = field(default_factory=list)
    rule_errors: dict[RuleKey, str] = field(default_factory=dict)
    error: Exception | None = None

    def count(self, action: FirewallAction) -> int:
        return sum(1 for a in self.actions.values() if a is action)

    @property
    def duration_seconds(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        """True if the spec loaded and every rule converged or was handed off."""
        return self.error is None and not self.rule_errors


class FirewallController:
    """Runs FirewallReconciler over the spec file on an interval."""

    def __init__(self, config: Config, reconciler: FirewallReconciler, sink: EventSink) -> None:
        self._config = config
        self._reconciler = reconciler
        self._sink = sink
        self._network = NetworkInfo(network_url=config.network_link)
        self._shutdown_event = asyncio.Event()

    @property
    def config(self) -> Config:
        return self._config

    @property
    def reconciler(self) -> FirewallReconciler:
        return self._reconciler

    async def run(self) -> None:
        """Run reconciliation passes until shutdown."""
        logger.info(
            "Starting firewall controller",
            extra={
                "project_id": self._config.project_id,
                "network_project_id": self._config.network_project_id,
                "on_xpn": self._config.on_xpn,
                "enable_pinhole": self._config.enable_pinhole,
                "interval_seconds": self._config.reconcile_interval_seconds,
            },
        )

        while not self._shutdown_event.is_set():
            # Provider calls block; keep the loop responsive to signals
            result = await asyncio.to_thread(self.reconcile_once)
            self._log_result(result)

            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self._config.reconcile_interval_seconds,
                )
            except TimeoutError:
                pass

        logger.info("Firewall controller shutdown complete")

    def shutdown(self) -> None:
        """Signal the controller to stop after the current pass."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()

    def reconcile_once(self) -> ReconcileResult:
        """Execute a single pass over the spec file."""
        result = ReconcileResult()

        try:
            spec = load_spec(self._config.specs_dir)
        except SpecLoadError as e:
            logger.error("Failed to load spec", extra={"error": str(e)})
            result.error = e
            result.end_time = datetime.now(UTC)
            return result

        for service in spec.services:
            owner = service.owner
            if service.nodes is not None:
                params = service.to_params(service.nodes, self._network)
                self._ensure(result, owner, params, shared=False, health_check=False)
            if service.health_check is not None:
                params = service.to_params(service.health_check, self._network)
                self._ensure(
                    result, owner, params, shared=service.health_check.shared, health_check=True
                )

        for name in spec.deleted_rules:
            try:
                result.actions[("", name)] = self._reconciler.ensure_rule_deleted(name)
            except FirewallXPNError as e:
                # No owning service to attach an event to; surface in the log
                logger.warning(
                    "Firewall deletion requires network owner",
                    extra={"firewall": name, "gcloud_cmd": e.gcloud_cmd},
                )
                result.xpn_notified.append(("", name))
            except FirewallProviderError as e:
                logger.error("Failed to delete firewall rule", extra={"firewall": name, "error": str(e)})
                result.rule_errors[("", name)] = str(e)

        result.end_time = datetime.now(UTC)
        return result

    def _ensure(
        self,
        result: ReconcileResult,
        owner: ServiceRef,
        params: FirewallParams,
        shared: bool,
        health_check: bool,
    ) -> None:
        try:
            if health_check:
                action = ensure_firewall_for_health_check(
                    self._reconciler, owner, params, shared, self._sink
                )
            else:
                action = ensure_firewall_for_nodes(self._reconciler, owner, params, self._sink)
        except (FirewallProviderError, TagResolutionError) as e:
            logger.error(
                "Failed to ensure firewall rule",
                extra={"firewall": params.name, "service": owner.key, "error": str(e)},
            )
            result.rule_errors[(owner.key, params.name)] = str(e)
            return

        if action is None:
            result.xpn_notified.append((owner.key, params.name))
        else:
            result.actions[(owner.key, params.name)] = action

    def _log_result(self, result: ReconcileResult) -> None:
        log_data: dict[str, Any] = {
            "duration_seconds": result.duration_seconds,
            "rules_created": result.count(FirewallAction.CREATED),
            "rules_patched": result.count(FirewallAction.PATCHED),
            "rules_unchanged": result.count(FirewallAction.UNCHANGED),
            "rules_deleted": result.count(FirewallAction.DELETED),
            "xpn_notified": len(result.xpn_notified),
            "rules_failed": len(result.rule_errors),
        }

        if result.success:
            logger.info("Reconciliation pass complete", extra=log_data)
        else:
            if result.error is not None:
                log_data["error"] = str(result.error)
            logger.error("Reconciliation pass failed", extra=log_data)
