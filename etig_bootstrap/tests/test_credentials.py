from __future__ import annotations

import json
import os
import stat
from pathlib import Path

import pytest

from etig_bootstrap.provisioning.errors import ConfigurationInvalid, TokenFileInvalid, TokenFileMissing
from etig_bootstrap.startup.credentials import (
    check_admin_password,
    generate_grafana_password,
    generate_influxdb_token,
    load_or_generate_credentials,
    read_admin_token,
)


def _mode(path: Path) -> int:
    return stat.S_IMODE(os.stat(path).st_mode)


def test_generated_secrets_have_expected_shape() -> None:
    token = generate_influxdb_token()
    password = generate_grafana_password()

    assert token.startswith("apiv3_")
    assert len(token) > 90
    assert not set("=+/") & set(token)
    assert not set("=+/@") & set(password)
    assert generate_influxdb_token() != token


def test_credentials_are_generated_once_then_reloaded(tmp_path: Path) -> None:
    path = tmp_path / ".credentials"

    first, generated = load_or_generate_credentials(path)
    second, generated_again = load_or_generate_credentials(path)

    assert generated and not generated_again
    assert first == second
    assert _mode(path) == 0o600
    assert 'INFLUXDB_TOKEN="apiv3_' in path.read_text(encoding="utf-8")


def test_regenerate_replaces_existing_credentials(tmp_path: Path) -> None:
    path = tmp_path / ".credentials"
    first, _ = load_or_generate_credentials(path)

    second, generated = load_or_generate_credentials(path, regenerate=True)

    assert generated
    assert second.influxdb_token != first.influxdb_token


def test_shell_style_file_is_parsed(tmp_path: Path) -> None:
    path = tmp_path / ".credentials"
    path.write_text(
        "# Generated credentials for TIG stack\nINFLUXDB_TOKEN=\"apiv3_x\"\nGRAFANA_ADMIN_PASSWORD='pw'\n",
        encoding="utf-8",
    )

    credentials, generated = load_or_generate_credentials(path)

    assert not generated
    assert credentials.influxdb_token == "apiv3_x"
    assert credentials.grafana_admin_password == "pw"
    assert "pw" not in repr(credentials)


def test_incomplete_credentials_file_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / ".credentials"
    path.write_text('INFLUXDB_TOKEN="apiv3_x"\n', encoding="utf-8")

    with pytest.raises(ConfigurationInvalid):
        load_or_generate_credentials(path)


def test_admin_token_is_read_from_json(tmp_path: Path) -> None:
    path = tmp_path / "auto-admin-token.json"
    path.write_text(json.dumps({"token": "apiv3_abc", "name": "_admin", "expiry_millis": 3513625132923}))

    assert read_admin_token(path) == "apiv3_abc"


def test_missing_admin_token_file(tmp_path: Path) -> None:
    with pytest.raises(TokenFileMissing):
        read_admin_token(tmp_path / "nope.json")


@pytest.mark.parametrize("content", ["not json at all", '{"name": "_admin"}', '{"token": null}', '{"token": ""}', "[]"])
def test_malformed_admin_token_file(tmp_path: Path, content: str) -> None:
    path = tmp_path / "auto-admin-token.json"
    path.write_text(content)

    with pytest.raises(TokenFileInvalid):
        read_admin_token(path)


@pytest.mark.parametrize("password, ok", [("admin", False), ("", False), (None, False), ("Xy9-long", True)])
def test_default_admin_password_only_warns(caplog, password, ok: bool) -> None:
    assert check_admin_password(password) is ok
    assert ("default admin password" in caplog.text) is (not ok)
