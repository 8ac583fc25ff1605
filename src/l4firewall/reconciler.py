"""Firewall rule reconciliation for L4 load balancers.

Each call converges a single named rule:
1. Fetch the existing rule (absent is a normal outcome)
2. Resolve target node tags (failure aborts before any mutation)
3. Build the desired rule
4. Create it, patch it, or leave it alone if it already matches

At most one mutating provider call is made per invocation. Nothing is
retried here; the control loop calls again on its next tick.

Permission failures on a Shared VPC service project are raised as
FirewallXPNError carrying the gcloud command for the host project admin.
"""

from __future__ import annotations

import logging
from enum import Enum

from .comparator import firewall_rule_equal
from .description import API_VERSION_GA, make_l4_firewall_description
from .models import FirewallAllowed, FirewallParams, FirewallRule
from .provider import (
    CloudContext,
    FirewallNotFoundError,
    FirewallProvider,
    FirewallProviderError,
)
from .tags import TagResolver
from .xpn import (
    FirewallXPNError,
    firewall_to_gcloud_create_cmd,
    firewall_to_gcloud_delete_cmd,
    firewall_to_gcloud_update_cmd,
    is_xpn_permission_failure,
)

logger = logging.getLogger(__name__)


class FirewallAction(str, Enum):
    """What a reconcile call did to the remote rule."""

    CREATED = "created"
    PATCHED = "patched"
    UNCHANGED = "unchanged"
    DELETED = "deleted"
    ABSENT = "absent"


def build_firewall_rule(
    params: FirewallParams,
    target_tags: list[str],
    description: str,
    enable_pinhole: bool,
) -> FirewallRule:
    """Build the desired rule from its parameters.

    Destination ranges are only set when pinhole firewalls are enabled.
    The protocol is lower-cased, which is how the compute API stores it.
    """
    rule = FirewallRule(
        name=params.name,
        description=description,
        network=params.network.network_url,
        source_ranges=list(params.source_ranges),
        target_tags=list(target_tags),
        allowed=[
            FirewallAllowed(
                ip_protocol=params.protocol.lower(),
                ports=list(params.port_ranges),
            )
        ],
    )
    if enable_pinhole:
        rule.destination_ranges = list(params.destination_ranges)
    return rule


class FirewallReconciler:
    """Ensures L4 load balancer firewall rules exist as specified.

    Stateless between calls; safe to share between threads as long as the
    provider and tag resolver are.
    """

    def __init__(
        self,
        provider: FirewallProvider,
        tag_resolver: TagResolver,
        cloud: CloudContext,
        enable_pinhole: bool = False,
    ) -> None:
        self._provider = provider
        self._tag_resolver = tag_resolver
        self._cloud = cloud
        self._enable_pinhole = enable_pinhole

    @property
    def cloud(self) -> CloudContext:
        return self._cloud

    def ensure_rule(self, owner_key: str, params: FirewallParams, shared: bool) -> FirewallAction:
        """Create or converge the firewall rule described by params.

        Args:
            owner_key: namespace/name of the owning service.
            params: Desired rule parameters.
            shared: Rule is shared between services; its description is not
                compared.

        Returns:
            The action taken.

        Raises:
            FirewallXPNError: Permission denied on a Shared VPC service project.
            TagResolutionError: Node tags could not be resolved.
            FirewallProviderError: Any other provider failure.
        """
        log_fields = {
            "firewall": params.name,
            "l4_type": params.l4_type.value,
            "service": owner_key,
        }

        existing: FirewallRule | None
        try:
            existing = self._provider.get(params.name)
        except FirewallNotFoundError:
            existing = None

        target_tags = self._tag_resolver.resolve(params.node_names)

        description, desc_err = make_l4_firewall_description(
            owner_key, params.ip, API_VERSION_GA, shared, params.l4_type.display_name
        )
        if desc_err is not None:
            logger.warning(
                "Failed to generate description for L4 firewall rule",
                extra={**log_fields, "error": str(desc_err)},
            )

        expected = build_firewall_rule(params, target_tags, description, self._enable_pinhole)

        if existing is None:
            logger.info("Creating L4 firewall rule", extra=log_fields)
            try:
                self._provider.create(expected)
            except FirewallProviderError as e:
                if is_xpn_permission_failure(e, self._cloud):
                    gcloud_cmd = firewall_to_gcloud_create_cmd(
                        expected, self._cloud.network_project_id
                    )
                    logger.info(
                        "Could not create L4 firewall rule on XPN cluster",
                        extra={**log_fields, "error": str(e), "gcloud_cmd": gcloud_cmd},
                    )
                    raise FirewallXPNError(e, gcloud_cmd) from e
                raise
            return FirewallAction.CREATED

        if firewall_rule_equal(expected, existing, skip_description=shared):
            logger.debug("L4 firewall rule up to date", extra=log_fields)
            return FirewallAction.UNCHANGED

        logger.info("Patching L4 firewall rule", extra=log_fields)
        try:
            self._provider.patch(expected)
        except FirewallProviderError as e:
            if is_xpn_permission_failure(e, self._cloud):
                gcloud_cmd = firewall_to_gcloud_update_cmd(expected, self._cloud.network_project_id)
                logger.info(
                    "Could not patch L4 firewall rule on XPN cluster",
                    extra={**log_fields, "error": str(e), "gcloud_cmd": gcloud_cmd},
                )
                raise FirewallXPNError(e, gcloud_cmd) from e
            raise
        return FirewallAction.PATCHED

    def ensure_rule_deleted(self, name: str) -> FirewallAction:
        """Delete the named rule; a rule that is already gone is not an error.

        Raises:
            FirewallXPNError: Permission denied on a Shared VPC service project.
            FirewallProviderError: Any other provider failure.
        """
        try:
            self._provider.delete(name)
        except FirewallNotFoundError:
            logger.debug("L4 firewall rule already deleted", extra={"firewall": name})
            return FirewallAction.ABSENT
        except FirewallProviderError as e:
            if is_xpn_permission_failure(e, self._cloud):
                gcloud_cmd = firewall_to_gcloud_delete_cmd(name, self._cloud.network_project_id)
                logger.info(
                    "Could not delete L4 firewall rule on XPN cluster",
                    extra={"firewall": name, "error": str(e), "gcloud_cmd": gcloud_cmd},
                )
                raise FirewallXPNError(e, gcloud_cmd) from e
            raise
        logger.info("Deleted L4 firewall rule", extra={"firewall": name})
        return FirewallAction.DELETED
