"""CLI entry point for ringlink services.

Provides a unified command-line interface to run any ringlink service.
Services can run in one-shot mode (``--once``) or continuously with a
Prometheus metrics server.

Examples:
    ```bash
    python -m ringlink <service> [options]
    python -m ringlink health_checker --once
    python -m ringlink sync_agent --log-level DEBUG
    python -m ringlink federation --config config/services/federation.yaml
    ```
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any, NamedTuple

from pydantic import ValidationError

from ringlink.core import NodeConfig, open_store, start_metrics_server
from ringlink.core.base_service import BaseService
from ringlink.core.logger import Logger, StructuredFormatter
from ringlink.core.store import RingStore
from ringlink.core.yaml import load_yaml
from ringlink.models.constants import ServiceName
from ringlink.services.federation import Federation
from ringlink.services.health_checker import HealthChecker
from ringlink.services.sync_agent import SyncAgent


CONFIG_BASE = Path("config")
NODE_CONFIG = CONFIG_BASE / "ringlink.yaml"


class ServiceEntry(NamedTuple):
    """Registry entry mapping a service to its class and default config path."""

    cls: type[BaseService[Any]]
    config_path: Path


SERVICE_REGISTRY: dict[str, ServiceEntry] = {
    ServiceName.HEALTH_CHECKER: ServiceEntry(
        HealthChecker, CONFIG_BASE / "services" / "health_checker.yaml"
    ),
    ServiceName.SYNC_AGENT: ServiceEntry(SyncAgent, CONFIG_BASE / "services" / "sync_agent.yaml"),
    ServiceName.FEDERATION: ServiceEntry(Federation, CONFIG_BASE / "services" / "federation.yaml"),
}

logger = Logger("cli")


async def run_service(
    service_name: str,
    service_class: type[BaseService[Any]],
    store: RingStore,
    service_dict: dict[str, Any],
    *,
    once: bool,
) -> int:
    """Run a service in one-shot or continuous mode.

    In one-shot mode, the service runs a single cycle and exits.
    In continuous mode, a Prometheus metrics server is started and the
    service runs indefinitely until a shutdown signal is received.

    Args:
        service_name: Service identifier used for logging.
        service_class: The BaseService subclass to instantiate.
        store: Opened ring store shared with the service.
        service_dict: Parsed service configuration (without ``pool`` key).
        once: If True, run a single cycle and exit. If False, run continuously.

    Returns:
        Exit code: 0 for success, 1 for failure.
    """
    if service_dict:
        service = service_class.from_dict(service_dict, store=store)
    else:
        service = service_class(store=store)

    # One-shot mode: single cycle, no metrics server
    if once:
        try:
            async with service:
                await service.run()
            logger.info(f"{service_name}_completed")
            return 0
        except Exception as e:  # CLI error boundary for one-shot mode
            logger.error(f"{service_name}_failed", error=str(e))
            return 1

    # Continuous mode: metrics server + indefinite operation
    metrics_config = service.config.metrics
    metrics_server = await start_metrics_server(metrics_config)

    if metrics_config.enabled:
        logger.info(
            "metrics_server_started",
            host=metrics_config.host,
            port=metrics_config.port,
            path=metrics_config.path,
        )

    def handle_signal(sig: signal.Signals) -> None:
        logger.info("shutdown_signal", signal=sig.name)
        service.request_shutdown()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        async with service:
            await service.run_forever()
        return 0
    except Exception as e:  # CLI error boundary for continuous mode
        logger.error(f"{service_name}_failed", error=str(e))
        return 1
    finally:
        await metrics_server.stop()
        if metrics_config.enabled:
            logger.info("metrics_server_stopped")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments for the service runner."""
    parser = argparse.ArgumentParser(
        prog="ringlink",
        description="ringlink Service Runner",
    )

    parser.add_argument(
        "service",
        choices=list(SERVICE_REGISTRY.keys()),
        help="Service to run",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Service config path (default: config/services/<service>.yaml)",
    )

    parser.add_argument(
        "--node-config",
        type=Path,
        default=NODE_CONFIG,
        help=f"Node config path (default: {NODE_CONFIG})",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log level (default: INFO)",
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run once and exit (default: run continuously)",
    )

    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    """Configure the root logger with structured formatting.

    Installs a ``StructuredFormatter`` on the root handler so that all
    log output, from both ``Logger`` and plain ``logging.getLogger()``
    calls, is unified as ``level name message key=value ...``.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level))


def _load_yaml_dict(path: Path) -> dict[str, Any]:
    """Load a YAML file as a dict, returning ``{}`` if the file does not exist."""
    if not path.exists():
        logger.warning("config_not_found", path=str(path))
        return {}
    return load_yaml(str(path))


def _apply_pool_overrides(
    node_dict: dict[str, Any],
    pool_overrides: dict[str, Any] | None,
    service_name: str,
) -> None:
    """Merge per-service pool overrides into the shared node configuration.

    Applies ``user`` and ``password_env`` to ``pool.database``, ``min_size``
    and ``max_size`` to ``pool.limits``, and sets ``application_name`` to
    the service name unless the overrides name one. Memory nodes are left
    untouched.
    """
    if node_dict.get("store") != "postgres":
        return
    pool = node_dict.get("pool") or {}
    node_dict["pool"] = pool
    pool.setdefault("application_name", service_name)

    if not pool_overrides:
        return

    if "application_name" in pool_overrides:
        pool["application_name"] = pool_overrides["application_name"]

    db_keys = ("user", "password_env")
    db_overrides = {k: pool_overrides[k] for k in db_keys if k in pool_overrides}
    if db_overrides:
        pool.setdefault("database", {}).update(db_overrides)

    limits_keys = ("min_size", "max_size")
    limits_overrides = {k: pool_overrides[k] for k in limits_keys if k in pool_overrides}
    if limits_overrides:
        pool.setdefault("limits", {}).update(limits_overrides)


async def main(argv: list[str] | None = None) -> int:
    """Main entry point: parse args, open the ring store, and run the service."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    entry = SERVICE_REGISTRY[args.service]
    config_path = args.config or entry.config_path

    node_dict = _load_yaml_dict(args.node_config)
    service_dict = _load_yaml_dict(config_path)
    pool_overrides = service_dict.pop("pool", None)
    _apply_pool_overrides(node_dict, pool_overrides, args.service)

    try:
        node_config = NodeConfig.from_dict(node_dict)
    except ValidationError as e:
        logger.error("node_config_invalid", error=str(e))
        return 1

    try:
        async with open_store(node_config) as store:
            return await run_service(
                service_name=args.service,
                service_class=entry.cls,
                store=store,
                service_dict=service_dict,
                once=args.once,
            )
    except ConnectionError as e:
        logger.error("connection_failed", error=str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 130


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
