"""Shared VPC (XPN) permission failures.

On a Shared VPC service project the network, and every firewall rule on it,
belongs to the host project. The operator's identity usually cannot change
those rules, so a permission failure there is not something a retry fixes.
Instead it is turned into the gcloud command a host project admin has to run.
"""

from __future__ import annotations

import shlex

from .models import FirewallRule
from .provider import CloudContext, is_forbidden_error


class FirewallXPNError(Exception):
    """A firewall change that must be made by the network owner.

    Attributes:
        error: The provider error that triggered the classification.
        gcloud_cmd: Command the host project admin needs to run.
        message: Human readable remediation text.
    """

    def __init__(self, error: BaseException, gcloud_cmd: str) -> None:
        self.error = error
        self.gcloud_cmd = gcloud_cmd
        self.message = f"Firewall change required by security admin: `{gcloud_cmd}`"
        super().__init__(self.message)


def is_xpn_permission_failure(err: BaseException | None, cloud: CloudContext) -> bool:
    """True if err is a permission failure caused by Shared VPC topology."""
    return is_forbidden_error(err) and cloud.on_xpn


def _name_from_link(link: str) -> str:
    return link.rstrip("/").rsplit("/", 1)[-1]


def _firewall_to_gcloud_args(rule: FirewallRule, project_id: str) -> str:
    allow: list[str] = []
    for allowed in rule.allowed:
        if allowed.ports:
            allow.extend(f"{allowed.ip_protocol}:{port}" for port in allowed.ports)
        else:
            allow.append(allowed.ip_protocol)

    # Sorted so the same rule always renders the same command and event text
    args = [
        f"--description {shlex.quote(rule.description)}",
        f"--allow {','.join(sorted(allow))}",
        f"--source-ranges {','.join(sorted(rule.source_ranges))}",
    ]
    if rule.destination_ranges:
        args.append(f"--destination-ranges {','.join(sorted(rule.destination_ranges))}")
    args.append(f"--target-tags {','.join(sorted(rule.target_tags))}")
    args.append(f"--project {project_id}")
    return " ".join(args)


def firewall_to_gcloud_create_cmd(rule: FirewallRule, project_id: str) -> str:
    """gcloud command creating rule in project_id."""
    args = _firewall_to_gcloud_args(rule, project_id)
    return (
        f"gcloud compute firewall-rules create {rule.name} "
        f"--network {_name_from_link(rule.network)} {args}"
    )


def firewall_to_gcloud_update_cmd(rule: FirewallRule, project_id: str) -> str:
    """gcloud command updating rule in project_id."""
    args = _firewall_to_gcloud_args(rule, project_id)
    return f"gcloud compute firewall-rules update {rule.name} {args}"


def firewall_to_gcloud_delete_cmd(name: str, project_id: str) -> str:
    """gcloud command deleting the named rule in project_id."""
    return f"gcloud compute firewall-rules delete {name} --project {project_id}"
