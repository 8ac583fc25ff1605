"""Firewall provider: get/create/patch/delete of named rules.

The reconciler only depends on the FirewallProvider protocol and on the
error classes defined here. GCEFirewallProvider binds that protocol to the
Compute Engine firewalls API and translates google.api_core exceptions into
the three provider error kinds: not found, permission denied, other.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from google.api_core import exceptions as google_exceptions
from google.cloud import compute_v1

from .config import DEFAULT_OPERATION_TIMEOUT_SECONDS
from .models import FirewallAllowed, FirewallRule

logger = logging.getLogger(__name__)


class FirewallProviderError(Exception):
    """Raised when a provider call fails for a reason not covered below."""

    pass


class FirewallNotFoundError(FirewallProviderError):
    """Raised when the named rule does not exist."""

    pass


class FirewallPermissionError(FirewallProviderError):
    """Raised when the caller is not allowed to perform the operation."""

    pass


def is_not_found_error(err: BaseException | None) -> bool:
    return isinstance(err, FirewallNotFoundError)


def is_forbidden_error(err: BaseException | None) -> bool:
    return isinstance(err, FirewallPermissionError)


@dataclass(frozen=True)
class CloudContext:
    """Projects the operator talks to.

    Attributes:
        project_id: Project the operator (and its cluster) lives in.
        network_project_id: Project owning the VPC. Differs from project_id
            on a Shared VPC (XPN) service project.
    """

    project_id: str
    network_project_id: str

    @property
    def on_xpn(self) -> bool:
        return self.network_project_id != self.project_id


class FirewallProvider(Protocol):
    """Remote store of firewall rules, addressed by name."""

    def get(self, name: str) -> FirewallRule:
        """Return the rule. Raises FirewallNotFoundError if absent."""
        ...

    def create(self, rule: FirewallRule) -> None: ...

    def patch(self, rule: FirewallRule) -> None: ...

    def delete(self, name: str) -> None:
        """Delete the rule. Raises FirewallNotFoundError if absent."""
        ...


def to_compute_firewall(rule: FirewallRule) -> compute_v1.Firewall:
    """Convert the internal rule model to a compute API resource."""
    firewall = compute_v1.Firewall(
        name=rule.name,
        description=rule.description,
        source_ranges=list(rule.source_ranges),
        destination_ranges=list(rule.destination_ranges),
        target_tags=list(rule.target_tags),
        allowed=[
            compute_v1.Allowed(I_p_protocol=allowed.ip_protocol, ports=list(allowed.ports))
            for allowed in rule.allowed
        ],
    )
    if rule.network:
        firewall.network = rule.network
    return firewall


def from_compute_firewall(firewall: compute_v1.Firewall) -> FirewallRule:
    """Convert a compute API resource to the internal rule model."""
    return FirewallRule(
        name=firewall.name,
        description=firewall.description,
        network=firewall.network,
        source_ranges=list(firewall.source_ranges),
        destination_ranges=list(firewall.destination_ranges),
        target_tags=list(firewall.target_tags),
        allowed=[
            FirewallAllowed(ip_protocol=allowed.I_p_protocol, ports=list(allowed.ports))
            for allowed in firewall.allowed
        ],
    )


def translate_api_error(
    err: google_exceptions.GoogleAPICallError | TimeoutError, action: str, name: str
) -> FirewallProviderError:
    """Map a google.api_core error (or an operation timeout) to a provider error."""
    message = f"{action} firewall {name!r} failed: {err}"
    if isinstance(err, google_exceptions.NotFound):
        return FirewallNotFoundError(message)
    if isinstance(err, google_exceptions.Forbidden | google_exceptions.PermissionDenied):
        return FirewallPermissionError(message)
    return FirewallProviderError(message)


class GCEFirewallProvider:
    """FirewallProvider backed by the Compute Engine firewalls API.

    All calls target the network project, since that is where firewall
    rules of a Shared VPC live.
    """

    def __init__(
        self,
        cloud: CloudContext,
        client: compute_v1.FirewallsClient | None = None,
        operation_timeout_seconds: int = DEFAULT_OPERATION_TIMEOUT_SECONDS,
    ) -> None:
        self._cloud = cloud
        self._client = client if client is not None else compute_v1.FirewallsClient()
        self._timeout = operation_timeout_seconds

    @property
    def project(self) -> str:
        return self._cloud.network_project_id

    def get(self, name: str) -> FirewallRule:
        try:
            firewall = self._client.get(project=self.project, firewall=name)
        except google_exceptions.GoogleAPICallError as e:
            raise translate_api_error(e, "get", name) from e
        return from_compute_firewall(firewall)

    def create(self, rule: FirewallRule) -> None:
        try:
            operation = self._client.insert(
                project=self.project,
                firewall_resource=to_compute_firewall(rule),
            )
            operation.result(timeout=self._timeout)
        except (google_exceptions.GoogleAPICallError, TimeoutError) as e:
            raise translate_api_error(e, "create", rule.name) from e
        logger.debug("Firewall insert completed", extra={"firewall": rule.name, "project": self.project})

    def patch(self, rule: FirewallRule) -> None:
        """Replace the stored rule with rule.

        Sent as a full update: the REST patch body drops empty repeated
        fields, which would leave emptied range lists untouched.
        """
        try:
            operation = self._client.update(
                project=self.project,
                firewall=rule.name,
                firewall_resource=to_compute_firewall(rule),
            )
            operation.result(timeout=self._timeout)
        except (google_exceptions.GoogleAPICallError, TimeoutError) as e:
            raise translate_api_error(e, "patch", rule.name) from e
        logger.debug("Firewall patch completed", extra={"firewall": rule.name, "project": self.project})

    def delete(self, name: str) -> None:
        try:
            operation = self._client.delete(project=self.project, firewall=name)
            operation.result(timeout=self._timeout)
        except (google_exceptions.GoogleAPICallError, TimeoutError) as e:
            raise translate_api_error(e, "delete", name) from e
        logger.debug("Firewall delete completed", extra={"firewall": name, "project": self.project})
