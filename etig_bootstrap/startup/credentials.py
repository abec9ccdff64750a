"""Stack secrets: the persisted .credentials file and the InfluxDB admin token file."""

from __future__ import annotations

import base64
import json
import os
import secrets
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Tuple

from etig_bootstrap.provisioning.errors import ConfigurationInvalid, TokenFileInvalid, TokenFileMissing
from etig_bootstrap.utils.logging_setup import get_logger

logger = get_logger("credentials")

DEFAULT_ADMIN_PASSWORD = "admin"


@dataclass(frozen=True, repr=False)
class StackCredentials:
    influxdb_token: str
    grafana_admin_password: str

    def __repr__(self) -> str:
        return f"StackCredentials(influxdb_token='{self.influxdb_token[:20]}...', grafana_admin_password='***')"


def generate_influxdb_token() -> str:
    """Return an ``apiv3_`` admin token built from 74 random bytes."""

    random_part = base64.b64encode(secrets.token_bytes(74)).decode("ascii")
    for char in "=+/":
        random_part = random_part.replace(char, "")
    return f"apiv3_{random_part}"


def generate_grafana_password() -> str:
    password = base64.b64encode(secrets.token_bytes(24)).decode("ascii")
    for char in "=+/@":
        password = password.replace(char, "")
    return password


def _parse_shell_assignments(text: str) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        values[key.strip()] = value
    return values


def _write_private(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(content)
    os.chmod(path, 0o600)


def save_credentials(path: Path, credentials: StackCredentials) -> None:
    content = (
        "# Generated credentials for TIG stack\n"
        f"# Generated on: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n"
        f'INFLUXDB_TOKEN="{credentials.influxdb_token}"\n'
        f'GRAFANA_ADMIN_PASSWORD="{credentials.grafana_admin_password}"\n'
    )
    _write_private(path, content)


def load_or_generate_credentials(path: Path | str, *, regenerate: bool = False) -> Tuple[StackCredentials, bool]:
    """Load credentials from ``path`` or create and persist a fresh set.

    Returns the credentials and whether they were newly generated.
    """

    creds_path = Path(path)
    if creds_path.exists() and not regenerate:
        values = _parse_shell_assignments(creds_path.read_text(encoding="utf-8"))
        missing = [key for key in ("INFLUXDB_TOKEN", "GRAFANA_ADMIN_PASSWORD") if not values.get(key)]
        if missing:
            raise ConfigurationInvalid(f"{creds_path} is missing {', '.join(missing)}; rerun with --regenerate-creds")
        logger.info("Loaded existing credentials from %s", creds_path)
        return StackCredentials(values["INFLUXDB_TOKEN"], values["GRAFANA_ADMIN_PASSWORD"]), False

    credentials = StackCredentials(generate_influxdb_token(), generate_grafana_password())
    save_credentials(creds_path, credentials)
    logger.info("Generated and saved secure credentials to %s", creds_path)
    return credentials, True


def read_admin_token(path: Path | str) -> str:
    """Extract the ``token`` field of the InfluxDB 3 admin token file."""

    token_path = Path(path)
    if not token_path.is_file():
        raise TokenFileMissing(token_path)

    try:
        raw = token_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise TokenFileInvalid(token_path, f"unreadable ({exc})") from exc

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise TokenFileInvalid(token_path, "not valid JSON", raw[:100]) from exc

    token = data.get("token") if isinstance(data, dict) else None
    if not isinstance(token, str) or not token.strip():
        raise TokenFileInvalid(token_path, "no 'token' field", raw[:100])

    logger.info("Token extracted from %s", token_path)
    return token.strip()


def check_admin_password(password: str | None) -> bool:
    """Warn when Grafana still uses the stock password. Never blocks the run."""

    if not password or password == DEFAULT_ADMIN_PASSWORD:
        logger.warning("Using default admin password. Consider setting GRAFANA_ADMIN_PASSWORD.")
        return False
    return True


__all__ = [
    "StackCredentials",
    "check_admin_password",
    "generate_grafana_password",
    "generate_influxdb_token",
    "load_or_generate_credentials",
    "read_admin_token",
    "save_credentials",
]
