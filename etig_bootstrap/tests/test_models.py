from __future__ import annotations

import pytest

from etig_bootstrap.provisioning.errors import ConfigurationInvalid, ExtractionError
from etig_bootstrap.provisioning.models import (
    BasicAuth,
    BearerToken,
    Credential,
    Endpoint,
    ProvisioningStep,
    RunSummary,
    StepRequest,
    TaskOutcome,
    TaskStatus,
    json_field,
    matching_item_field,
)


def _builder(_context):
    return StepRequest("POST", "/x")


def test_endpoint_urls() -> None:
    endpoint = Endpoint("tig-grafana", 3000, health_path="/api/health")

    assert endpoint.base_url == "http://tig-grafana:3000"
    assert endpoint.health_url == "http://tig-grafana:3000/api/health"
    assert endpoint.url("api/org") == "http://tig-grafana:3000/api/org"


@pytest.mark.parametrize("host, port", [("", 80), ("db", 0), ("db", 70000), ("db", "http"), ("db", None)])
def test_endpoint_rejects_bad_values(host: str, port: int) -> None:
    with pytest.raises(ConfigurationInvalid):
        Endpoint(host, port)


def test_overlapping_code_sets_are_rejected() -> None:
    with pytest.raises(ConfigurationInvalid):
        ProvisioningStep("s", _builder, frozenset({200, 409}), frozenset({409}))


@pytest.mark.parametrize("success, idempotent", [({200, 401}, set()), ({200}, {403})])
def test_auth_codes_cannot_be_success(success, idempotent) -> None:
    with pytest.raises(ConfigurationInvalid):
        ProvisioningStep("s", _builder, frozenset(success), frozenset(idempotent))


def test_step_needs_success_codes() -> None:
    with pytest.raises(ConfigurationInvalid):
        ProvisioningStep("s", _builder, frozenset())


def test_extractor_and_context_key_go_together() -> None:
    with pytest.raises(ConfigurationInvalid):
        ProvisioningStep("s", _builder, frozenset({201}), response_extractor=json_field("id"))
    with pytest.raises(ConfigurationInvalid):
        ProvisioningStep("s", _builder, frozenset({201}), context_key="id")


def test_json_field_stringifies_values() -> None:
    assert json_field("id")({"id": 7}) == "7"
    assert json_field("key")({"key": "abc123"}) == "abc123"


@pytest.mark.parametrize("body", [{}, {"id": None}, {"id": ""}, [], "text"])
def test_json_field_fails_on_missing_or_null(body) -> None:
    with pytest.raises(ExtractionError):
        json_field("id")(body)


def test_matching_item_field_picks_exact_name() -> None:
    body = {
        "totalCount": 2,
        "serviceAccounts": [
            {"id": 3, "name": "tig-grafana-sa-old"},
            {"id": 9, "name": "tig-grafana-sa"},
        ],
    }

    assert matching_item_field("serviceAccounts", "name", "tig-grafana-sa", "id")(body) == "9"


def test_matching_item_field_fails_without_match() -> None:
    with pytest.raises(ExtractionError):
        matching_item_field("serviceAccounts", "name", "missing", "id")({"serviceAccounts": []})


@pytest.mark.parametrize("items", [5, "tig-grafana-sa", {"id": 9, "name": "tig-grafana-sa"}])
def test_matching_item_field_rejects_non_array_collection(items) -> None:
    with pytest.raises(ExtractionError):
        matching_item_field("serviceAccounts", "name", "tig-grafana-sa", "id")({"serviceAccounts": items})


def test_credential_base_cannot_be_instantiated() -> None:
    with pytest.raises(TypeError):
        Credential()


def test_credentials_render_request_kwargs_and_hide_secrets() -> None:
    bearer = BearerToken("apiv3_abcdefghijkl")
    basic = BasicAuth("admin", "s3cret")

    assert bearer.request_kwargs() == {"headers": {"Authorization": "Bearer apiv3_abcdefghijkl"}}
    assert bearer.with_scheme("Token").request_kwargs()["headers"]["Authorization"] == "Token apiv3_abcdefghijkl"
    assert basic.request_kwargs() == {"auth": ("admin", "s3cret")}
    assert "abcdefghijkl" not in repr(bearer)
    assert "s3cret" not in repr(basic)


def test_run_summary_reports_first_non_successful_task() -> None:
    summary = RunSummary(
        outcomes=[
            TaskOutcome("init-database", TaskStatus.SUCCESS),
            TaskOutcome("init-dashboard-auth", TaskStatus.FAILURE, "boom"),
        ]
    )

    assert not summary.succeeded
    assert summary.failed_task == "init-dashboard-auth"
    assert summary.exit_code == 1
    assert RunSummary().exit_code == 0
