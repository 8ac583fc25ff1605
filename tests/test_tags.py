"""Tests for node tag resolution."""

from __future__ import annotations

from unittest import mock

import pytest
from google.api_core import exceptions as google_exceptions
from google.cloud import compute_v1

from l4firewall.tags import GCENodeTagResolver, TagResolutionError


def make_instance(name: str, tags: list[str]) -> compute_v1.Instance:
    return compute_v1.Instance(name=name, tags=compute_v1.Tags(items=tags))


def make_client(instances_by_zone: dict[str, list[compute_v1.Instance]]) -> mock.MagicMock:
    client = mock.MagicMock(spec=compute_v1.InstancesClient)
    client.aggregated_list.return_value = [
        (zone, compute_v1.InstancesScopedList(instances=instances))
        for zone, instances in instances_by_zone.items()
    ]
    return client


class TestGCENodeTagResolver:
    def test_static_tags_skip_lookup(self) -> None:
        client = make_client({})
        resolver = GCENodeTagResolver("my-project", node_tags=["b", "a", "a"], client=client)

        assert resolver.resolve(["n1"]) == ["a", "b"]
        client.aggregated_list.assert_not_called()

    def test_union_of_tags_across_zones(self) -> None:
        client = make_client(
            {
                "zones/us-central1-a": [make_instance("n1", ["gke-node", "web"])],
                "zones/us-central1-b": [make_instance("n2", ["gke-node"])],
            }
        )
        resolver = GCENodeTagResolver("my-project", client=client)

        assert resolver.resolve(["n2", "n1"]) == ["gke-node", "web"]
        request = client.aggregated_list.call_args.kwargs["request"]
        assert request.project == "my-project"
        assert request.filter == 'name eq "(n1|n2)"'

    def test_unrequested_instances_ignored(self) -> None:
        client = make_client(
            {"zones/a": [make_instance("n1", ["gke-node"]), make_instance("n10", ["other"])]}
        )
        resolver = GCENodeTagResolver("my-project", client=client)

        assert resolver.resolve(["n1"]) == ["gke-node"]

    def test_missing_node_raises(self) -> None:
        client = make_client({"zones/a": [make_instance("n1", ["gke-node"])]})
        resolver = GCENodeTagResolver("my-project", client=client)

        with pytest.raises(TagResolutionError, match="n2"):
            resolver.resolve(["n1", "n2"])

    def test_no_tags_raises(self) -> None:
        client = make_client({"zones/a": [make_instance("n1", [])]})
        resolver = GCENodeTagResolver("my-project", client=client)

        with pytest.raises(TagResolutionError, match="no network tags"):
            resolver.resolve(["n1"])

    def test_instance_prefix_filters_contributors(self) -> None:
        client = make_client(
            {
                "zones/a": [
                    make_instance("gke-pool-n1", ["gke-node"]),
                    make_instance("adhoc-n2", ["adhoc"]),
                ]
            }
        )
        resolver = GCENodeTagResolver("my-project", node_instance_prefix="gke-", client=client)

        assert resolver.resolve(["gke-pool-n1", "adhoc-n2"]) == ["gke-node"]

    def test_empty_node_names_raise(self) -> None:
        resolver = GCENodeTagResolver("my-project", client=make_client({}))

        with pytest.raises(TagResolutionError):
            resolver.resolve([])

    def test_api_error_raises(self) -> None:
        client = mock.MagicMock(spec=compute_v1.InstancesClient)
        client.aggregated_list.side_effect = google_exceptions.Forbidden("denied")
        resolver = GCENodeTagResolver("my-project", client=client)

        with pytest.raises(TagResolutionError, match="failed to list instances"):
            resolver.resolve(["n1"])
