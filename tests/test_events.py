"""Tests for the XPN event bridge."""

from __future__ import annotations

import logging

import pytest
from gce_mock import MockFirewallProvider, MockTagResolver, RecordingEventSink

from l4firewall.events import (
    XPN_EVENT_REASON,
    EventType,
    LoggingEventSink,
    ensure_firewall,
    ensure_firewall_for_health_check,
    ensure_firewall_for_nodes,
)
from l4firewall.models import FirewallParams, L4LBType, NetworkInfo, ServiceRef
from l4firewall.provider import CloudContext, FirewallPermissionError, FirewallProviderError
from l4firewall.reconciler import FirewallAction, FirewallReconciler

OWNER = ServiceRef(namespace="default", name="web")
STANDALONE = CloudContext(project_id="my-project", network_project_id="my-project")
XPN = CloudContext(project_id="my-project", network_project_id="host-project")


@pytest.fixture
def params() -> FirewallParams:
    return FirewallParams(
        name="k8s-fw-abc",
        ip="10.128.0.10",
        port_ranges=["80"],
        source_ranges=["0.0.0.0/0"],
        node_names=["n1"],
        l4_type=L4LBType.INTERNAL,
        network=NetworkInfo(network_url="projects/host-project/global/networks/shared-vpc"),
    )


def make_reconciler(provider: MockFirewallProvider, cloud: CloudContext) -> FirewallReconciler:
    return FirewallReconciler(provider, MockTagResolver({"n1": ["gke-node"]}), cloud)


class TestEnsureFirewall:
    def test_success_emits_no_event(self, params: FirewallParams) -> None:
        provider = MockFirewallProvider()
        sink = RecordingEventSink()

        action = ensure_firewall(make_reconciler(provider, XPN), OWNER, params, False, sink)

        assert action is FirewallAction.CREATED
        assert sink.events == []

    def test_xpn_denied_create_emits_one_event(self, params: FirewallParams) -> None:
        provider = MockFirewallProvider()
        provider.fail_on("create", FirewallPermissionError("403 Forbidden"))
        sink = RecordingEventSink()

        action = ensure_firewall(make_reconciler(provider, XPN), OWNER, params, False, sink)

        assert action is None
        assert len(sink.events) == 1
        event = sink.events[0]
        assert event.owner == OWNER
        assert event.event_type is EventType.NORMAL
        assert event.reason == XPN_EVENT_REASON
        assert event.message.startswith("Firewall change required by security admin: `")
        assert "gcloud compute firewall-rules create k8s-fw-abc" in event.message
        assert "--project host-project" in event.message

    def test_denied_without_xpn_propagates(self, params: FirewallParams) -> None:
        provider = MockFirewallProvider()
        provider.fail_on("create", FirewallPermissionError("403 Forbidden"))
        sink = RecordingEventSink()

        with pytest.raises(FirewallPermissionError):
            ensure_firewall(make_reconciler(provider, STANDALONE), OWNER, params, False, sink)
        assert sink.events == []

    def test_other_errors_propagate_on_xpn(self, params: FirewallParams) -> None:
        provider = MockFirewallProvider()
        provider.fail_on("create", FirewallProviderError("500 backend error"))
        sink = RecordingEventSink()

        with pytest.raises(FirewallProviderError):
            ensure_firewall(make_reconciler(provider, XPN), OWNER, params, False, sink)
        assert sink.events == []


class TestWrappers:
    def test_nodes_rule_is_never_shared(self, params: FirewallParams) -> None:
        provider = MockFirewallProvider()
        sink = RecordingEventSink()

        ensure_firewall_for_nodes(make_reconciler(provider, STANDALONE), OWNER, params, sink)

        description = provider.get_rule("k8s-fw-abc").description
        assert "default/web" in description

    def test_health_check_rule_shared(self, params: FirewallParams) -> None:
        provider = MockFirewallProvider()
        sink = RecordingEventSink()

        ensure_firewall_for_health_check(
            make_reconciler(provider, STANDALONE), OWNER, params, True, sink
        )

        description = provider.get_rule("k8s-fw-abc").description
        assert "default/web" not in description
        assert "shared by all L4 ILB Services" in description


class TestLoggingEventSink:
    def test_warning_logged_at_warning_level(self, caplog: pytest.LogCaptureFixture) -> None:
        sink = LoggingEventSink()

        with caplog.at_level(logging.INFO, logger="l4firewall.events"):
            sink.event(OWNER, EventType.WARNING, "SyncFailed", "something broke")

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.getMessage() == "something broke"
        assert record.involved_object == "default/web"
        assert record.reason == "SyncFailed"

    def test_normal_logged_at_info_level(self, caplog: pytest.LogCaptureFixture) -> None:
        sink = LoggingEventSink()

        with caplog.at_level(logging.INFO, logger="l4firewall.events"):
            sink.event(OWNER, EventType.NORMAL, XPN_EVENT_REASON, "run this")

        assert caplog.records[-1].levelno == logging.INFO
        assert caplog.records[-1].event_type == "Normal"
