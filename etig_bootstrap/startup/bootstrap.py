"""Command-line entry point: provision a freshly started TIG stack."""

from __future__ import annotations

import argparse
import signal
import sys
import threading
from typing import Any, Dict, Iterable, Optional

import requests

from etig_bootstrap.provisioning.errors import BootstrapError, OperationCancelled
from etig_bootstrap.provisioning.models import RunSummary, TaskStatus
from etig_bootstrap.provisioning.orchestrator import Orchestrator
from etig_bootstrap.utils.logging_setup import get_logger

from .config import (
    BootstrapConfig,
    apply_env_overrides,
    build_bootstrap_config,
    configure_logging,
    load_startup_config,
)
from .credentials import check_admin_password, load_or_generate_credentials, read_admin_token
from .tasks import build_tasks
from .token_sink import GrafanaTokenFile

logger = get_logger("bootstrap")

# argparse destination -> (config section, key)
FLAG_OVERRIDES: Dict[str, tuple] = {
    "timeout": ("general", "timeout"),
    "interval": ("general", "health_check_interval"),
    "credentials_file": ("general", "credentials_file"),
    "influxdb_host": ("influxdb", "host"),
    "influxdb_port": ("influxdb", "port"),
    "database": ("influxdb", "bucket"),
    "token_file": ("influxdb", "token_file"),
    "grafana_host": ("grafana", "host"),
    "grafana_port": ("grafana", "port"),
    "admin_user": ("grafana", "admin_user"),
    "service_account": ("grafana", "service_account"),
    "token_name": ("grafana", "token_name"),
    "token_output": ("grafana", "token_file"),
}


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="etig-bootstrap",
        description="Create the InfluxDB database and Grafana service-account token for the TIG stack",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    provision = subparsers.add_parser("provision", help="Wait for the stack and provision it")
    provision.add_argument("--config", help="JSON startup config (default: bootstrap.conf if present)")
    provision.add_argument(
        "--regenerate-creds",
        action="store_true",
        help="Force regeneration of the stored credentials",
    )
    provision.add_argument("--credentials-file", help="Path of the .credentials file")
    provision.add_argument("--influxdb-host")
    provision.add_argument("--influxdb-port")
    provision.add_argument("--database", help="Database (bucket) to create")
    provision.add_argument("--token-file", help="InfluxDB admin token JSON file")
    provision.add_argument("--grafana-host")
    provision.add_argument("--grafana-port")
    provision.add_argument("--admin-user", help="Grafana admin user")
    provision.add_argument("--service-account", help="Grafana service account name")
    provision.add_argument("--token-name", help="Grafana API token name")
    provision.add_argument("--token-output", help="File receiving the Grafana API token")
    provision.add_argument("--timeout", help="Seconds to wait for each service to become healthy")
    provision.add_argument("--interval", help="Seconds between health checks")
    provision.add_argument("--log-dir", help="Directory for bootstrap.log (default: $ETIG_LOG_DIR or ./logs)")
    provision.add_argument("--log-level", default="INFO")
    return parser.parse_args(list(argv) if argv is not None else None)


def resolve_config(args: argparse.Namespace, environ: Optional[Dict[str, str]] = None) -> BootstrapConfig:
    """Defaults < config file < environment < flags."""

    if args.config:
        values = load_startup_config(args.config, required=True)
    else:
        values = load_startup_config()
    values = apply_env_overrides(values, environ)

    for dest, (section, key) in FLAG_OVERRIDES.items():
        value = getattr(args, dest, None)
        if value is not None:
            values[section][key] = value
    return build_bootstrap_config(values)


def provision(
    config: BootstrapConfig,
    *,
    regenerate_creds: bool = False,
    session: Optional[requests.Session] = None,
    cancel_event: Optional[threading.Event] = None,
) -> RunSummary:
    credentials, generated = load_or_generate_credentials(config.credentials_file, regenerate=regenerate_creds)
    if generated:
        logger.warning("New credentials were generated; recreate the stack so the services pick them up")

    admin_token = read_admin_token(config.influxdb.token_file)
    admin_password = config.grafana.admin_password or credentials.grafana_admin_password
    check_admin_password(admin_password)

    sink = GrafanaTokenFile(
        config.grafana.token_file,
        service_account_name=config.grafana.service_account,
        token_name=config.grafana.token_name,
        grafana_host=f"{config.grafana.host}:{config.grafana.port}",
    )
    tasks = build_tasks(config, admin_token=admin_token, admin_password=admin_password)

    owns_session = session is None
    session = session or requests.Session()
    try:
        orchestrator = Orchestrator(
            tasks,
            session,
            timeout_seconds=config.timeout_seconds,
            poll_interval_seconds=config.poll_interval_seconds,
            sink=sink,
            cancel_event=cancel_event,
        )
        return orchestrator.run()
    finally:
        if owns_session:
            session.close()


def report(summary: RunSummary) -> None:
    for outcome in summary.outcomes:
        if outcome.outcome is TaskStatus.SUCCESS:
            logger.info("✓ %s", outcome.task_name)
            for result in outcome.results:
                logger.info("    %s: %s (HTTP %s)", result.step_name, result.outcome.value, result.http_status)
        else:
            logger.error("✗ %s [%s]: %s", outcome.task_name, outcome.outcome.value, outcome.error_detail)
    if summary.succeeded:
        logger.info("✓ Provisioning completed successfully")
    elif summary.failed_task:
        logger.error("Provisioning stopped at task %s (exit code %d)", summary.failed_task, summary.exit_code)
    elif summary.error is not None:
        logger.error("Provisioning failed: %s (exit code %d)", summary.error, summary.exit_code)


def _install_signal_handlers(cancel_event: threading.Event) -> Dict[int, Any]:
    def _cancel(signum, _frame) -> None:
        cancel_event.set()
        raise OperationCancelled(f"Received {signal.Signals(signum).name}, aborting")

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, _cancel)
    return previous


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(log_dir=args.log_dir, level=args.log_level)

    cancel_event = threading.Event()
    previous_handlers = _install_signal_handlers(cancel_event)
    try:
        config = resolve_config(args)
        logger.info(
            "Starting provisioning: InfluxDB %s:%s, Grafana %s:%s",
            config.influxdb.host,
            config.influxdb.port,
            config.grafana.host,
            config.grafana.port,
        )
        summary = provision(config, regenerate_creds=args.regenerate_creds, cancel_event=cancel_event)
    except BootstrapError as exc:
        logger.error("%s", exc)
        return exc.exit_code
    except Exception:
        logger.exception("Unexpected error during provisioning")
        return BootstrapError.exit_code
    finally:
        for signum, handler in previous_handlers.items():
            signal.signal(signum, handler)

    report(summary)
    return summary.exit_code


if __name__ == "__main__":
    sys.exit(main())
