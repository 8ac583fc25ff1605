"""Structured firewall rule descriptions.

The description field of a rule carries a small JSON document naming the
service that owns it. Shared rules carry no owner, only a note that the rule
is shared.

Rendering never raises. A rule without a description is still a correct
rule, so callers get (value, error) back and decide whether to log.
"""

from __future__ import annotations

import ipaddress
import logging

from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

API_VERSION_GA = "ga"
API_VERSION_BETA = "beta"
API_VERSION_ALPHA = "alpha"
VALID_API_VERSIONS = frozenset({API_VERSION_GA, API_VERSION_BETA, API_VERSION_ALPHA})

SHARED_RESOURCE_DESCRIPTION = "This {resource} resource is shared by all L4 {lb_type} Services."


class DescriptionError(Exception):
    """Raised (or returned) when a description cannot be rendered."""

    pass


class L4LBResourceDescription(BaseModel):
    """JSON document stored in the description of an L4 load balancer resource."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    service_name: str = Field("", alias="networking.gke.io/service-name")
    service_ip: str = Field("", alias="networking.gke.io/service-ip")
    api_version: str = Field("", alias="networking.gke.io/api-version")
    resource_description: str = Field("", alias="networking.gke.io/resource-description")

    @field_validator("service_ip")
    @classmethod
    def validate_service_ip(cls, v: str) -> str:
        if v:
            ipaddress.ip_address(v)
        return v

    @field_validator("api_version")
    @classmethod
    def validate_api_version(cls, v: str) -> str:
        if v and v not in VALID_API_VERSIONS:
            raise ValueError(f"api version must be one of {sorted(VALID_API_VERSIONS)}")
        return v

    def marshal(self) -> str:
        # Empty fields are left out, same as the controller that reads them back
        return self.model_dump_json(by_alias=True, exclude_defaults=True)


def make_l4_firewall_description(
    service_name: str,
    ip: str,
    api_version: str,
    shared: bool,
    lb_type: str = "ILB",
) -> tuple[str, DescriptionError | None]:
    """Render the description for an L4 firewall rule.

    Args:
        service_name: Owner key (namespace/name). Ignored for shared rules.
        ip: Load balancer front-end IP. Ignored for shared rules.
        api_version: Compute API version the rule is managed with.
        shared: Whether the rule is shared between services.
        lb_type: Load balancer flavour, used in the shared-rule note.

    Returns:
        Tuple of (description, error). On error the description is empty.
    """
    try:
        if shared:
            desc = L4LBResourceDescription(
                api_version=api_version,
                resource_description=SHARED_RESOURCE_DESCRIPTION.format(
                    resource="firewall rule", lb_type=lb_type
                ),
            )
        else:
            desc = L4LBResourceDescription(
                service_name=service_name,
                service_ip=ip,
                api_version=api_version,
            )
    except ValidationError as e:
        return "", DescriptionError(f"invalid firewall description for {service_name!r}: {e}")

    return desc.marshal(), None


def parse_l4_firewall_description(text: str) -> L4LBResourceDescription | None:
    """Parse a description written by make_l4_firewall_description.

    Returns:
        The parsed description, or None if the text is not one of ours.
    """
    if not text or not text.lstrip().startswith("{"):
        return None
    try:
        return L4LBResourceDescription.model_validate_json(text)
    except ValidationError:
        logger.debug("Firewall description is not structured JSON", extra={"description": text})
        return None
