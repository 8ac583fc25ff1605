"""Main entry point for the L4 firewall operator.

Authentication is keyless: Application Default Credentials from workload
identity or the metadata server. Key files in the environment stop startup.
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from datetime import UTC, datetime

from google.auth.exceptions import DefaultCredentialsError
from google.cloud import compute_v1

from .config import Config, ConfigurationError
from .controller import FirewallController
from .events import LoggingEventSink
from .provider import CloudContext, GCEFirewallProvider
from .reconciler import FirewallReconciler
from .security import KeyFileCredentialError, get_keyless_credentials
from .tags import GCENodeTagResolver

# LogRecord attributes that are not user supplied "extra" fields
_RESERVED_RECORD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(json_output: bool = True, level: str = "INFO") -> None:
    """Configure root logging, JSON to stdout by default."""
    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    # Reduce noise from Google client libraries
    logging.getLogger("google").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_controller(config: Config) -> FirewallController:
    """Wire the GCE bindings into a controller.

    Raises:
        KeyFileCredentialError: If key based credentials are configured.
        DefaultCredentialsError: If no application default credentials exist.
    """
    credentials, _ = get_keyless_credentials()
    cloud = CloudContext(project_id=config.project_id, network_project_id=config.network_project_id)

    provider = GCEFirewallProvider(
        cloud,
        client=compute_v1.FirewallsClient(credentials=credentials),
        operation_timeout_seconds=config.operation_timeout_seconds,
    )
    tag_resolver = GCENodeTagResolver(
        project_id=config.project_id,
        node_tags=config.node_tags,
        node_instance_prefix=config.node_instance_prefix,
        client=compute_v1.InstancesClient(credentials=credentials),
    )
    reconciler = FirewallReconciler(
        provider,
        tag_resolver,
        cloud,
        enable_pinhole=config.enable_pinhole,
    )
    return FirewallController(config, reconciler, LoggingEventSink())


async def main() -> int:
    """Run the operator.

    Returns:
        Exit code (0 for success, 1 for configuration errors, 2 for a
        credential policy violation).
    """
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        setup_logging()
        logging.getLogger(__name__).error("Configuration error", extra={"error": str(e)})
        return 1

    setup_logging(config.enable_json_logging, config.log_level)
    logger = logging.getLogger(__name__)

    logger.info(
        "Starting L4 firewall operator",
        extra={
            "project_id": config.project_id,
            "network_project_id": config.network_project_id,
            "network": config.network_link,
        },
    )

    try:
        controller = build_controller(config)
    except KeyFileCredentialError as e:
        logger.critical("Credential policy violation", extra={"error": str(e)})
        return 2
    except DefaultCredentialsError as e:
        logger.error("No application default credentials", extra={"error": str(e)})
        return 1

    loop = asyncio.get_running_loop()

    def signal_handler(sig: signal.Signals) -> None:
        logger.info("Received signal", extra={"signal": sig.name})
        controller.shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))

    try:
        await controller.run()
    except Exception as e:
        logger.exception("Unhandled exception", extra={"error": str(e)})
        return 1

    logger.info("Operator stopped")
    return 0


def run() -> None:
    """Entry point for the operator."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
