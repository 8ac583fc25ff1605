"""Resolution of node names to the network tags firewall rules target."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from google.api_core import exceptions as google_exceptions
from google.cloud import compute_v1

logger = logging.getLogger(__name__)


class TagResolutionError(Exception):
    """Raised when node names cannot be mapped to network tags."""

    pass


class TagResolver(Protocol):
    """Maps a set of node names to the network tags of their instances."""

    def resolve(self, node_names: Sequence[str]) -> list[str]: ...


class GCENodeTagResolver:
    """TagResolver backed by Compute Engine instances.

    Statically configured node tags win over instance lookup. Otherwise the
    named instances are looked up across all zones of the project and the
    union of their tags is returned, sorted.
    """

    def __init__(
        self,
        project_id: str,
        node_tags: Sequence[str] = (),
        node_instance_prefix: str = "",
        client: compute_v1.InstancesClient | None = None,
    ) -> None:
        self._project_id = project_id
        self._node_tags = list(node_tags)
        self._node_instance_prefix = node_instance_prefix
        self._client = client

    def _instances_client(self) -> compute_v1.InstancesClient:
        if self._client is None:
            self._client = compute_v1.InstancesClient()
        return self._client

    def resolve(self, node_names: Sequence[str]) -> list[str]:
        """Return the network tags of the given nodes.

        Raises:
            TagResolutionError: If a node has no instance, no tags are found,
                or the instance lookup fails.
        """
        if self._node_tags:
            return sorted(set(self._node_tags))

        if not node_names:
            raise TagResolutionError("no node names given, cannot determine target tags")

        wanted = set(node_names)
        request = compute_v1.AggregatedListInstancesRequest(
            project=self._project_id,
            filter=f'name eq "({"|".join(sorted(wanted))})"',
        )

        found: set[str] = set()
        tags: set[str] = set()
        try:
            for zone, scoped_list in self._instances_client().aggregated_list(request=request):
                for instance in scoped_list.instances:
                    if instance.name not in wanted:
                        continue
                    found.add(instance.name)
                    if self._node_instance_prefix and not instance.name.startswith(
                        self._node_instance_prefix
                    ):
                        continue
                    tags.update(instance.tags.items)
                    logger.debug(
                        "Resolved node tags",
                        extra={"node": instance.name, "zone": zone, "tags": list(instance.tags.items)},
                    )
        except google_exceptions.GoogleAPICallError as e:
            raise TagResolutionError(f"failed to list instances in project {self._project_id!r}: {e}") from e

        missing = wanted - found
        if missing:
            raise TagResolutionError(f"failed to find instances for nodes: {sorted(missing)}")
        if not tags:
            raise TagResolutionError(f"no network tags found on instances for nodes: {sorted(wanted)}")

        return sorted(tags)
