"""Tests for operator wiring and structured logging."""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from unittest import mock

import pytest

from l4firewall.config import Config
from l4firewall.main import JsonFormatter, build_controller, main


def make_record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="l4firewall.reconciler",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Creating %s",
        args=("rule",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_basic_fields(self) -> None:
        data = json.loads(JsonFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["message"] == "Creating rule"
        assert data["logger"] == "l4firewall.reconciler"
        assert data["timestamp"].endswith("Z")

    def test_extra_fields_included(self) -> None:
        data = json.loads(JsonFormatter().format(make_record(firewall="k8s-fw-abc", tags=["a"])))

        assert data["firewall"] == "k8s-fw-abc"
        assert data["tags"] == ["a"]
        assert "msg" not in data
        assert "args" not in data

    def test_unserializable_values_stringified(self) -> None:
        data = json.loads(JsonFormatter().format(make_record(path=Path("/specs"))))

        assert data["path"] == "/specs"

    def test_exception_included(self) -> None:
        try:
            raise ValueError("boom")
        except ValueError:
            record = make_record()
            record.exc_info = sys.exc_info()

        data = json.loads(JsonFormatter().format(record))

        assert "ValueError: boom" in data["exception"]


class TestBuildController:
    def test_wires_network_project(self, tmp_path: Path) -> None:
        config = Config(
            project_id="my-project",
            network_project_id="host-project",
            network_url="shared-vpc",
            specs_dir=tmp_path,
            enable_pinhole=True,
        )

        with (
            mock.patch("l4firewall.main.get_keyless_credentials", return_value=(mock.Mock(), None)),
            mock.patch("l4firewall.main.compute_v1") as compute_v1,
        ):
            controller = build_controller(config)

        assert controller.reconciler.cloud.on_xpn is True
        compute_v1.FirewallsClient.assert_called_once()
        compute_v1.InstancesClient.assert_called_once()


class TestMain:
    @pytest.mark.asyncio
    async def test_configuration_error_exit_code(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            with mock.patch("l4firewall.main.setup_logging"):
                assert await main() == 1

    @pytest.mark.asyncio
    async def test_key_file_exit_code(self, tmp_path: Path) -> None:
        env = {
            "GCP_PROJECT_ID": "my-project",
            "GCP_NETWORK": "default",
            "SPECS_DIR": str(tmp_path),
            "GOOGLE_APPLICATION_CREDENTIALS": "/key.json",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            with mock.patch("l4firewall.main.setup_logging"):
                assert await main() == 2
