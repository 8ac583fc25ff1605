"""Structural equality for firewall rules.

Decides whether an observed rule already matches the desired one, so the
reconciler can skip the mutating call. Order and duplicates are irrelevant
for every list-valued field; the allow entries are compared pairwise.
"""

from __future__ import annotations

from collections.abc import Iterable

from .models import FirewallAllowed, FirewallRule


def equal_string_sets(a: Iterable[str], b: Iterable[str]) -> bool:
    """True if both iterables hold the same strings, ignoring order and repeats."""
    return set(a) == set(b)


def allow_rules_equal(a: FirewallAllowed, b: FirewallAllowed) -> bool:
    """Compare protocol exactly and ports as a set."""
    return a.ip_protocol == b.ip_protocol and equal_string_sets(a.ports, b.ports)


def firewall_rule_equal(a: FirewallRule, b: FirewallRule, skip_description: bool) -> bool:
    """Check if two rules are equivalent for reconciliation purposes.

    Args:
        a: Desired rule.
        b: Observed rule.
        skip_description: Ignore the description field. Set for shared rules,
            whose description is not owned by any single service.

    Returns:
        True if no update is needed.
    """
    if len(a.allowed) != len(b.allowed):
        return False
    for allowed_a, allowed_b in zip(a.allowed, b.allowed, strict=True):
        if not allow_rules_equal(allowed_a, allowed_b):
            return False

    if not equal_string_sets(a.destination_ranges, b.destination_ranges):
        return False

    if not equal_string_sets(a.source_ranges, b.source_ranges):
        return False

    if not equal_string_sets(a.target_tags, b.target_tags):
        return False

    return skip_description or a.description == b.description
