"""Persist the minted Grafana API token next to the stack."""

from __future__ import annotations

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Mapping

from etig_bootstrap.provisioning.errors import OutputWriteFailed
from etig_bootstrap.utils.logging_setup import get_logger

TOKEN_KEY = "grafana_api_token"
SERVICE_ACCOUNT_ID_KEY = "service_account_id"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GrafanaTokenFile:
    """Output sink writing ``GRAFANA_API_TOKEN=<token>`` with provenance comments."""

    def __init__(
        self,
        path: Path | str,
        *,
        service_account_name: str,
        token_name: str,
        grafana_host: str,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.path = Path(path)
        self.service_account_name = service_account_name
        self.token_name = token_name
        self.grafana_host = grafana_host
        self._now = now
        self.logger = get_logger("token_sink")

    def render(self, token: str, service_account_id: str | None) -> str:
        timestamp = self._now().strftime("%Y-%m-%d %H:%M:%S UTC")
        return (
            "# Grafana API Token Information\n"
            f"# Generated: {timestamp}\n"
            f"# Service Account ID: {service_account_id or 'N/A'}\n"
            f"# Service Account Name: {self.service_account_name}\n"
            f"# Token Name: {self.token_name}\n"
            f"# Grafana Host: {self.grafana_host}\n"
            "\n"
            f"GRAFANA_API_TOKEN={token}\n"
        )

    def persist(self, task_name: str, values: Mapping[str, str], context: Mapping[str, str]) -> None:
        token = values.get(TOKEN_KEY)
        if not token:
            raise OutputWriteFailed(self.path, f"task {task_name} produced no {TOKEN_KEY}")

        content = self.render(token, context.get(SERVICE_ACCOUNT_ID_KEY))
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(directory))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(content)
                os.chmod(tmp_name, 0o600)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            raise OutputWriteFailed(self.path, str(exc)) from exc

        self.logger.info("Token stored securely in %s with metadata", self.path)


__all__ = ["GrafanaTokenFile", "SERVICE_ACCOUNT_ID_KEY", "TOKEN_KEY"]
