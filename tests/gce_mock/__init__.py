"""In-memory GCE doubles for testing.

This package provides fakes for the collaborators of the firewall
reconciler so tests run without Compute Engine connectivity.

Key Features:
- In-memory firewall rule state keyed by rule name
- Call log of every provider operation, for asserting mutation counts
- Error injection per operation (not found, permission denied, other)
- Node name to tag mapping for the tag resolver
- Recording event sink

Usage:
    from gce_mock import MockFirewallProvider, MockTagResolver, RecordingEventSink

    provider = MockFirewallProvider()
    reconciler = FirewallReconciler(provider, MockTagResolver(...), cloud)
    reconciler.ensure_rule("default/web", params, shared=False)

    assert provider.mutating_call_count == 1
"""

from .events import RecordedEvent, RecordingEventSink
from .provider import MockFirewallProvider, ProviderCall
from .tags import MockTagResolver

__all__ = [
    "MockFirewallProvider",
    "MockTagResolver",
    "ProviderCall",
    "RecordedEvent",
    "RecordingEventSink",
]
