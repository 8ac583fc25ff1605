"""Pydantic models for firewall parameters and the declarative spec file.

These models provide:
1. Type-safe YAML parsing
2. Validation at the boundary (fail fast, fail loudly)
3. Clean transformation to the parameters the reconciler consumes

The wire-shaped rule (FirewallRule) is a plain dataclass: it is built by the
reconciler and converted to and from the compute API by the provider.
"""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, Field, field_validator

from .config import MAX_FIREWALL_NAME_LENGTH

VALID_FIREWALL_NAME_PATTERN = r"^[a-z]([-a-z0-9]*[a-z0-9])?$"
VALID_PROTOCOLS = frozenset({"tcp", "udp", "sctp", "icmp", "esp", "ah", "all"})
MIN_PORT = 1
MAX_PORT = 65535


def _validate_cidr_list(values: list[str]) -> list[str]:
    for value in values:
        try:
            ipaddress.ip_network(value, strict=False)
        except ValueError as e:
            raise ValueError(f"invalid CIDR range {value!r}: {e}") from e
    return values


def _validate_port_list(values: list[str]) -> list[str]:
    for value in values:
        start_str, _, end_str = value.partition("-")
        try:
            start = int(start_str)
            end = int(end_str) if end_str else start
        except ValueError as e:
            raise ValueError(f"invalid port or port range {value!r}") from e
        if not (MIN_PORT <= start <= end <= MAX_PORT):
            raise ValueError(f"port range out of bounds {value!r}")
    return values


def _validate_firewall_name(value: str) -> str:
    if not re.match(VALID_FIREWALL_NAME_PATTERN, value):
        raise ValueError(f"name must match {VALID_FIREWALL_NAME_PATTERN}: {value}")
    return value


# =============================================================================
# Reconciler Inputs
# =============================================================================


class L4LBType(str, Enum):
    """Load balancer flavour a rule belongs to. Used in log fields only."""

    INTERNAL = "internal"
    EXTERNAL = "external"

    @property
    def display_name(self) -> str:
        return "ILB" if self is L4LBType.INTERNAL else "NetLB"


class NetworkInfo(BaseModel):
    """Network a firewall rule attaches to."""

    model_config = {"extra": "ignore", "frozen": True, "populate_by_name": True}

    network_url: Annotated[str, Field(min_length=1, alias="networkURL")]
    subnetwork_url: str | None = Field(None, alias="subnetworkURL")
    is_default: bool = Field(True, alias="isDefault")

    @property
    def network_name(self) -> str:
        """Short network name, the last segment of the URL."""
        return self.network_url.rstrip("/").rsplit("/", 1)[-1]


class FirewallParams(BaseModel):
    """Everything needed to ensure one L4 load balancer firewall rule."""

    model_config = {"extra": "ignore", "frozen": True, "populate_by_name": True}

    name: Annotated[str, Field(min_length=1, max_length=MAX_FIREWALL_NAME_LENGTH)]
    ip: str = ""
    source_ranges: list[str] = Field(default_factory=list, alias="sourceRanges")
    destination_ranges: list[str] = Field(default_factory=list, alias="destinationRanges")
    port_ranges: list[str] = Field(default_factory=list, alias="portRanges")
    node_names: list[str] = Field(default_factory=list, alias="nodeNames")
    protocol: str = "TCP"
    l4_type: L4LBType = Field(L4LBType.INTERNAL, alias="l4Type")
    network: NetworkInfo

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _validate_firewall_name(v)

    @field_validator("source_ranges", "destination_ranges")
    @classmethod
    def validate_ranges(cls, v: list[str]) -> list[str]:
        return _validate_cidr_list(v)

    @field_validator("port_ranges")
    @classmethod
    def validate_ports(cls, v: list[str]) -> list[str]:
        return _validate_port_list(v)

    @field_validator("protocol")
    @classmethod
    def validate_protocol(cls, v: str) -> str:
        if v.lower() not in VALID_PROTOCOLS:
            raise ValueError(f"protocol must be one of {sorted(VALID_PROTOCOLS)}")
        return v


@dataclass(frozen=True)
class ServiceRef:
    """Identity of the object owning a firewall rule."""

    namespace: str
    name: str

    @property
    def key(self) -> str:
        return service_key(self.namespace, self.name)

    def __str__(self) -> str:
        return self.key


def service_key(namespace: str, name: str) -> str:
    """Owner key in namespace/name form."""
    return f"{namespace}/{name}"


# =============================================================================
# Wire-shaped Firewall Rule
# =============================================================================


@dataclass
class FirewallAllowed:
    """One allow entry: a protocol and the ports it opens."""

    ip_protocol: str
    ports: list[str] = field(default_factory=list)


@dataclass
class FirewallRule:
    """A firewall rule as stored by the provider."""

    name: str
    description: str = ""
    network: str = ""
    source_ranges: list[str] = field(default_factory=list)
    destination_ranges: list[str] = field(default_factory=list)
    target_tags: list[str] = field(default_factory=list)
    allowed: list[FirewallAllowed] = field(default_factory=list)


# =============================================================================
# Declarative Spec File
# =============================================================================


class RuleConfig(BaseModel):
    """Rule portion of a service entry in the spec file."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: Annotated[str, Field(min_length=1, max_length=MAX_FIREWALL_NAME_LENGTH)]
    protocol: str = "TCP"
    ports: list[str] = Field(default_factory=list)
    source_ranges: list[str] = Field(default_factory=list, alias="sourceRanges")
    destination_ranges: list[str] | None = Field(None, alias="destinationRanges")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _validate_firewall_name(v)

    @field_validator("source_ranges")
    @classmethod
    def validate_source_ranges(cls, v: list[str]) -> list[str]:
        return _validate_cidr_list(v)

    @field_validator("destination_ranges")
    @classmethod
    def validate_destination_ranges(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return v
        return _validate_cidr_list(v)

    @field_validator("ports")
    @classmethod
    def validate_ports(cls, v: list[str]) -> list[str]:
        return _validate_port_list(v)

    @field_validator("protocol")
    @classmethod
    def validate_protocol(cls, v: str) -> str:
        if v.lower() not in VALID_PROTOCOLS:
            raise ValueError(f"protocol must be one of {sorted(VALID_PROTOCOLS)}")
        return v


class HealthCheckRuleConfig(RuleConfig):
    """Health check rule. May be shared between services."""

    shared: bool = False


class ServiceFirewallConfig(BaseModel):
    """Firewall rules owned by a single load balancer service."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    namespace: Annotated[str, Field(min_length=1, max_length=63)]
    name: Annotated[str, Field(min_length=1, max_length=63)]
    ip: str = ""
    l4_type: L4LBType = Field(L4LBType.INTERNAL, alias="l4Type")
    node_names: list[str] = Field(default_factory=list, alias="nodeNames")
    nodes: RuleConfig | None = None
    health_check: HealthCheckRuleConfig | None = Field(None, alias="healthCheck")

    @field_validator("ip")
    @classmethod
    def validate_ip(cls, v: str) -> str:
        if v:
            try:
                ipaddress.ip_address(v)
            except ValueError as e:
                raise ValueError(f"invalid IP address {v!r}") from e
        return v

    @property
    def owner(self) -> ServiceRef:
        return ServiceRef(namespace=self.namespace, name=self.name)

    def to_params(self, rule: RuleConfig, network: NetworkInfo) -> FirewallParams:
        """Build reconciler parameters for one of this service's rules.

        Destination ranges default to the service IP so pinhole rules only
        open the load balancer address.
        """
        if rule.destination_ranges is not None:
            destination_ranges = list(rule.destination_ranges)
        elif self.ip:
            destination_ranges = [self.ip]
        else:
            destination_ranges = []

        return FirewallParams(
            name=rule.name,
            ip=self.ip,
            source_ranges=list(rule.source_ranges),
            destination_ranges=destination_ranges,
            port_ranges=list(rule.ports),
            node_names=list(self.node_names),
            protocol=rule.protocol,
            l4_type=self.l4_type,
            network=network,
        )


class FirewallSpec(BaseModel):
    """Root of the declarative firewall spec file."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    services: list[ServiceFirewallConfig] = Field(default_factory=list)
    deleted_rules: list[str] = Field(default_factory=list, alias="deletedRules")

    @field_validator("deleted_rules")
    @classmethod
    def validate_deleted_rules(cls, v: list[str]) -> list[str]:
        return [_validate_firewall_name(name) for name in v]
