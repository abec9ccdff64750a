"""Unit tests for status classification and value threading in the provisioner."""

from __future__ import annotations

import logging

import pytest
import requests

from etig_bootstrap.provisioning.errors import AuthenticationFailed, ExtractionError, ProvisioningAborted
from etig_bootstrap.provisioning.models import (
    BasicAuth,
    Endpoint,
    Outcome,
    ProvisioningStep,
    StepRequest,
    json_field,
)
from etig_bootstrap.provisioning.provisioner import IdempotentProvisioner

from http_stubs import RoutedSession, StubResponse


logger = logging.getLogger(__name__)

GRAFANA = Endpoint("grafana.local", 3000, health_path="/api/health")


def _post(path: str, **body):
    return lambda context: StepRequest("POST", path.format(**context), json=body or None)


def _step(name: str, path: str, *, success=(200, 201), idempotent=(409,), **kwargs) -> ProvisioningStep:
    return ProvisioningStep(
        name=name,
        request_builder=_post(path),
        expected_success_codes=frozenset(success),
        idempotent_codes=frozenset(idempotent),
        **kwargs,
    )


CREATE_DATABASE = ProvisioningStep(
    name="create-database",
    request_builder=lambda ctx: StepRequest("POST", "/api/v3/configure/database", json={"db": ctx["database"]}),
    expected_success_codes=frozenset({200, 201}),
    idempotent_codes=frozenset({409}),
)
CREATE_SERVICE_ACCOUNT = _step(
    "create-service-account",
    "/api/serviceaccounts",
    success=(201,),
    response_extractor=json_field("id"),
    context_key="sa_id",
)
CREATE_TOKEN = _step(
    "create-token",
    "/api/serviceaccounts/{sa_id}/tokens",
    success=(200,),
    response_extractor=json_field("key"),
    context_key="token",
)


def test_conflict_is_already_exists_and_not_an_error() -> None:
    session = RoutedSession({("POST", "/api/v3/configure/database"): [StubResponse(409, "database already exists")]})
    provisioner = IdempotentProvisioner(session, Endpoint("db.local", 8181))

    results = provisioner.run([CREATE_DATABASE], {"database": "local_system"})

    assert [r.outcome for r in results] == [Outcome.ALREADY_EXISTS]
    assert results[0].http_status == 409
    assert results[0].extracted_value is None
    assert session.calls[0].kwargs["json"] == {"db": "local_system"}


def test_created_id_is_threaded_into_the_next_request() -> None:
    session = RoutedSession(
        {
            ("POST", "/api/serviceaccounts"): [StubResponse(201, {"id": 7, "name": "tig-grafana-sa"})],
            ("POST", "/api/serviceaccounts/7/tokens"): [StubResponse(200, {"id": 1, "key": "abc123"})],
        }
    )
    context = {}
    provisioner = IdempotentProvisioner(session, GRAFANA, credential=BasicAuth("admin", "pw"))

    results = provisioner.run([CREATE_SERVICE_ACCOUNT, CREATE_TOKEN], context)

    assert [r.outcome for r in results] == [Outcome.CREATED, Outcome.CREATED]
    assert context == {"sa_id": "7", "token": "abc123"}
    assert session.paths() == ["/api/serviceaccounts", "/api/serviceaccounts/7/tokens"]
    assert session.calls[0].kwargs["auth"] == ("admin", "pw")
    assert session.calls[0].headers["Accept"] == "application/json"


def test_second_run_reports_already_exists_and_completes() -> None:
    routes = {
        ("POST", "/api/v3/configure/database"): [StubResponse(201), StubResponse(409)],
    }
    session = RoutedSession(routes)
    provisioner = IdempotentProvisioner(session, Endpoint("db.local", 8181))

    first = provisioner.run([CREATE_DATABASE], {"database": "local_system"})
    second = provisioner.run([CREATE_DATABASE], {"database": "local_system"})

    assert first[0].outcome is Outcome.CREATED
    assert second[0].outcome is Outcome.ALREADY_EXISTS


def test_missing_field_in_created_response_raises_extraction_error() -> None:
    session = RoutedSession(
        {
            ("POST", "/api/serviceaccounts"): [StubResponse(201, {"name": "tig-grafana-sa"})],
            ("POST", "/api/serviceaccounts/7/tokens"): [StubResponse(200, {"key": "abc123"})],
        }
    )

    with pytest.raises(ExtractionError) as excinfo:
        IdempotentProvisioner(session, GRAFANA).run([CREATE_SERVICE_ACCOUNT, CREATE_TOKEN], {})

    assert excinfo.value.step_name == "create-service-account"
    assert excinfo.value.http_status == 201
    assert excinfo.value.result.outcome is Outcome.FAILED
    assert session.paths() == ["/api/serviceaccounts"]


def test_null_field_is_not_treated_as_empty_value() -> None:
    session = RoutedSession({("POST", "/api/serviceaccounts"): [StubResponse(201, {"id": None})]})

    with pytest.raises(ExtractionError):
        IdempotentProvisioner(session, GRAFANA).run([CREATE_SERVICE_ACCOUNT], {})


def test_failure_in_the_middle_stops_later_steps() -> None:
    steps = [_step("A", "/a"), _step("B", "/b"), _step("C", "/c")]
    session = RoutedSession(
        {
            ("POST", "/a"): [StubResponse(201)],
            ("POST", "/b"): [StubResponse(500, {"error": "boom"})],
            ("POST", "/c"): [StubResponse(201)],
        }
    )

    with pytest.raises(ProvisioningAborted) as excinfo:
        IdempotentProvisioner(session, GRAFANA).run(steps, {})

    error = excinfo.value
    assert not isinstance(error, AuthenticationFailed)
    assert error.step_name == "B"
    assert error.http_status == 500
    assert error.body == {"error": "boom"}
    assert [r.step_name for r in error.completed] == ["A"]
    assert "/c" not in session.paths()
    logger.info("Aborted as expected: %s", error)


@pytest.mark.parametrize("status", [401, 403])
def test_auth_failures_are_reported_distinctly(status: int) -> None:
    session = RoutedSession({("POST", "/api/v3/configure/database"): [StubResponse(status)]})

    with pytest.raises(AuthenticationFailed) as excinfo:
        IdempotentProvisioner(session, Endpoint("db.local", 8181)).run([CREATE_DATABASE], {"database": "x"})

    assert excinfo.value.http_status == status
    assert excinfo.value.exit_code != ProvisioningAborted.exit_code


def test_transport_error_aborts_with_step_name() -> None:
    session = RoutedSession(
        {("POST", "/api/v3/configure/database"): [requests.exceptions.ConnectionError("reset by peer")]}
    )

    with pytest.raises(ProvisioningAborted) as excinfo:
        IdempotentProvisioner(session, Endpoint("db.local", 8181)).run([CREATE_DATABASE], {"database": "x"})

    assert excinfo.value.step_name == "create-database"
    assert excinfo.value.http_status is None
    assert "transport error" in excinfo.value.reason


def test_missing_context_value_aborts_before_sending() -> None:
    session = RoutedSession({})

    with pytest.raises(ProvisioningAborted) as excinfo:
        IdempotentProvisioner(session, GRAFANA).run([CREATE_TOKEN], {})

    assert "sa_id" in excinfo.value.reason
    assert session.calls == []


def test_step_with_false_condition_is_skipped() -> None:
    lookup = ProvisioningStep(
        name="lookup",
        request_builder=lambda ctx: StepRequest("GET", "/lookup"),
        expected_success_codes=frozenset({200}),
        response_extractor=json_field("id"),
        context_key="sa_id",
        condition=lambda ctx: "sa_id" not in ctx,
    )
    session = RoutedSession({("GET", "/lookup"): [StubResponse(200, {"id": 3})]})

    results = IdempotentProvisioner(session, GRAFANA).run([lookup], {"sa_id": "7"})

    assert results == []
    assert session.calls == []


def test_non_json_body_is_kept_as_text() -> None:
    session = RoutedSession({("POST", "/api/v3/configure/database"): [StubResponse(200, "OK")]})

    results = IdempotentProvisioner(session, Endpoint("db.local", 8181)).run([CREATE_DATABASE], {"database": "x"})

    assert results[0].body == "OK"
