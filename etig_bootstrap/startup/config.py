"""Configuration helpers for the bootstrap command."""

from __future__ import annotations

import copy
import json
import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from etig_bootstrap.provisioning.errors import ConfigurationInvalid
from etig_bootstrap.utils.logging_setup import configure_logging as configure_runtime_logging
from etig_bootstrap.utils.logging_setup import get_logger

DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "general": {
        "timeout": 120,
        "health_check_interval": 5,
        "credentials_file": ".credentials",
    },
    "influxdb": {
        "host": "tig-influxdb3",
        "port": 8181,
        "bucket": "local_system",
        "token_file": "/etc/influxdb3/auto-admin-token.json",
    },
    "grafana": {
        "host": "tig-grafana",
        "port": 3000,
        "admin_user": "admin",
        "admin_password": None,
        "service_account": "tig-grafana-sa",
        "token_name": "tig-grafana-sa-token",
        "token_file": "grafana_SA_Token",
    },
}

# Same variable names as the generated .env file.
ENV_OVERRIDES: Dict[str, tuple] = {
    "TIMEOUT": ("general", "timeout"),
    "HEALTH_CHECK_INTERVAL": ("general", "health_check_interval"),
    "CREDENTIALS_FILE": ("general", "credentials_file"),
    "INFLUXDB_HOST": ("influxdb", "host"),
    "INFLUXDB_HTTP_PORT": ("influxdb", "port"),
    "INFLUXDB_BUCKET": ("influxdb", "bucket"),
    "INFLUXDB_TOKEN_FILE": ("influxdb", "token_file"),
    "GRAFANA_HOST": ("grafana", "host"),
    "GRAFANA_PORT": ("grafana", "port"),
    "GRAFANA_ADMIN_USER": ("grafana", "admin_user"),
    "GRAFANA_ADMIN_PASSWORD": ("grafana", "admin_password"),
    "GRAFANA_SA_NAME": ("grafana", "service_account"),
    "GRAFANA_TOKEN_NAME": ("grafana", "token_name"),
    "GRAFANA_TOKEN_FILE": ("grafana", "token_file"),
}


@dataclass(frozen=True)
class InfluxSettings:
    host: str
    port: int
    bucket: str
    token_file: Path


@dataclass(frozen=True)
class GrafanaSettings:
    host: str
    port: int
    admin_user: str
    admin_password: Optional[str]
    service_account: str
    token_name: str
    token_file: Path


@dataclass(frozen=True)
class BootstrapConfig:
    """Everything the pipeline needs, resolved once and passed down explicitly."""

    timeout_seconds: float
    poll_interval_seconds: float
    credentials_file: Path
    influxdb: InfluxSettings
    grafana: GrafanaSettings


def _merge(base: Dict[str, Dict[str, Any]], overrides: Mapping[str, Any]) -> Dict[str, Dict[str, Any]]:
    merged = copy.deepcopy(base)
    for section, values in overrides.items():
        if isinstance(values, Mapping) and isinstance(merged.get(section), dict):
            merged[section].update(values)
        else:
            merged[section] = values
    return merged


def load_startup_config(path: Path | str = Path("bootstrap.conf"), *, required: bool = False) -> Dict[str, Dict[str, Any]]:
    """Load the startup configuration file, falling back to defaults.

    The file is JSON; lines starting with ``#`` are treated as comments. An
    explicitly requested file (``required=True``) must exist.
    """

    config_path = Path(path)
    if not config_path.exists():
        if required:
            raise ConfigurationInvalid(f"Config file not found: {config_path}")
        return copy.deepcopy(DEFAULT_CONFIG)

    text = config_path.read_text(encoding="utf-8")
    stripped = "\n".join(line for line in text.splitlines() if not line.strip().startswith("#"))
    if not stripped.strip():
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        data = json.loads(stripped)
    except json.JSONDecodeError as exc:
        raise ConfigurationInvalid(f"Invalid JSON in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationInvalid(f"{config_path} must contain a JSON object")

    return _merge(DEFAULT_CONFIG, data)


def apply_env_overrides(
    values: Mapping[str, Any],
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Dict[str, Any]]:
    """Overlay the .env style variables present in ``environ``."""

    environ = os.environ if environ is None else environ
    merged = _merge(DEFAULT_CONFIG, values)
    for variable, (section, key) in ENV_OVERRIDES.items():
        raw = environ.get(variable)
        if raw is not None and raw.strip() != "":
            merged[section][key] = raw.strip()
    return merged


def _positive_number(value: Any, name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationInvalid(f"{name} must be a number, got {value!r}") from exc
    if not math.isfinite(number):
        raise ConfigurationInvalid(f"{name} must be finite, got {value!r}")
    if number <= 0:
        raise ConfigurationInvalid(f"{name} must be positive, got {value!r}")
    return number


def _port(value: Any, name: str) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationInvalid(f"{name} must be an integer, got {value!r}") from exc
    if not 0 < port < 65536:
        raise ConfigurationInvalid(f"{name} out of range: {port}")
    return port


def _name(value: Any, name: str) -> str:
    text = "" if value is None else str(value).strip()
    if not text:
        raise ConfigurationInvalid(f"{name} must not be empty")
    return text


def build_bootstrap_config(values: Mapping[str, Any]) -> BootstrapConfig:
    """Validate raw values and freeze them into a :class:`BootstrapConfig`."""

    merged = _merge(DEFAULT_CONFIG, values)
    general = merged["general"]
    influx = merged["influxdb"]
    grafana = merged["grafana"]

    timeout = _positive_number(general.get("timeout"), "timeout")
    interval = _positive_number(general.get("health_check_interval"), "health_check_interval")
    if interval > timeout:
        get_logger("config").warning(
            "health_check_interval (%gs) exceeds timeout (%gs); only one retry will happen",
            interval,
            timeout,
        )

    password = grafana.get("admin_password")
    return BootstrapConfig(
        timeout_seconds=timeout,
        poll_interval_seconds=interval,
        credentials_file=Path(_name(general.get("credentials_file"), "credentials_file")),
        influxdb=InfluxSettings(
            host=_name(influx.get("host"), "influxdb.host"),
            port=_port(influx.get("port"), "influxdb.port"),
            bucket=_name(influx.get("bucket"), "influxdb.bucket"),
            token_file=Path(_name(influx.get("token_file"), "influxdb.token_file")),
        ),
        grafana=GrafanaSettings(
            host=_name(grafana.get("host"), "grafana.host"),
            port=_port(grafana.get("port"), "grafana.port"),
            admin_user=_name(grafana.get("admin_user"), "grafana.admin_user"),
            admin_password=None if password is None else str(password),
            service_account=_name(grafana.get("service_account"), "grafana.service_account"),
            token_name=_name(grafana.get("token_name"), "grafana.token_name"),
            token_file=Path(_name(grafana.get("token_file"), "grafana.token_file")),
        ),
    )


def configure_logging(**kwargs: Any) -> None:
    """Initialise logging using the shared configuration helper."""

    configure_runtime_logging(**kwargs)


__all__ = [
    "DEFAULT_CONFIG",
    "BootstrapConfig",
    "GrafanaSettings",
    "InfluxSettings",
    "apply_env_overrides",
    "build_bootstrap_config",
    "configure_logging",
    "load_startup_config",
]
