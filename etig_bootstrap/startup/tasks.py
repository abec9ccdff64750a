"""The two provisioning tasks run against a freshly started stack."""

from __future__ import annotations

from typing import List, Mapping

from etig_bootstrap.provisioning.models import (
    BasicAuth,
    BearerToken,
    Endpoint,
    ProvisioningStep,
    ProvisioningTask,
    StepRequest,
    json_field,
    matching_item_field,
)

from .config import BootstrapConfig
from .token_sink import SERVICE_ACCOUNT_ID_KEY, TOKEN_KEY

INIT_DATABASE = "init-database"
INIT_DASHBOARD_AUTH = "init-dashboard-auth"


# --------------------------------------------------------------------------- #
# InfluxDB 3
# --------------------------------------------------------------------------- #


def _create_database_request(context: Mapping[str, str]) -> StepRequest:
    return StepRequest("POST", "/api/v3/configure/database", json={"db": context["database"]})


CREATE_DATABASE = ProvisioningStep(
    name="create-database",
    request_builder=_create_database_request,
    expected_success_codes=frozenset({200, 201}),
    idempotent_codes=frozenset({409}),
)


def build_database_task(config: BootstrapConfig, admin_token: str) -> ProvisioningTask:
    token = BearerToken(admin_token)
    return ProvisioningTask(
        name=INIT_DATABASE,
        endpoint=Endpoint(config.influxdb.host, config.influxdb.port, health_path="/health"),
        steps=(CREATE_DATABASE,),
        credential=token.with_scheme("Token"),
        health_credential=token,
        context={"database": config.influxdb.bucket},
    )


# --------------------------------------------------------------------------- #
# Grafana
# --------------------------------------------------------------------------- #


def _verify_admin_request(_context: Mapping[str, str]) -> StepRequest:
    return StepRequest("GET", "/api/org")


def _create_service_account_request(context: Mapping[str, str]) -> StepRequest:
    return StepRequest(
        "POST",
        "/api/serviceaccounts",
        json={"name": context["service_account_name"], "role": "Admin", "isDisabled": False},
    )


def _find_service_account_request(context: Mapping[str, str]) -> StepRequest:
    return StepRequest(
        "GET",
        "/api/serviceaccounts/search",
        params={"query": context["service_account_name"]},
    )


def _create_token_request(context: Mapping[str, str]) -> StepRequest:
    return StepRequest(
        "POST",
        f"/api/serviceaccounts/{context[SERVICE_ACCOUNT_ID_KEY]}/tokens",
        json={"name": context["token_name"]},
    )


def _service_account_unknown(context: Mapping[str, str]) -> bool:
    return SERVICE_ACCOUNT_ID_KEY not in context


def build_dashboard_auth_task(config: BootstrapConfig, admin_password: str) -> ProvisioningTask:
    grafana = config.grafana
    steps = (
        ProvisioningStep(
            name="verify-admin-auth",
            request_builder=_verify_admin_request,
            expected_success_codes=frozenset({200}),
        ),
        ProvisioningStep(
            name="create-service-account",
            request_builder=_create_service_account_request,
            expected_success_codes=frozenset({201}),
            idempotent_codes=frozenset({409}),
            response_extractor=json_field("id"),
            context_key=SERVICE_ACCOUNT_ID_KEY,
        ),
        ProvisioningStep(
            name="find-service-account",
            request_builder=_find_service_account_request,
            expected_success_codes=frozenset({200}),
            response_extractor=matching_item_field("serviceAccounts", "name", grafana.service_account, "id"),
            context_key=SERVICE_ACCOUNT_ID_KEY,
            condition=_service_account_unknown,
        ),
        ProvisioningStep(
            name="create-token",
            request_builder=_create_token_request,
            expected_success_codes=frozenset({200}),
            idempotent_codes=frozenset({409}),
            response_extractor=json_field("key"),
            context_key=TOKEN_KEY,
        ),
    )
    return ProvisioningTask(
        name=INIT_DASHBOARD_AUTH,
        endpoint=Endpoint(grafana.host, grafana.port, health_path="/api/health"),
        steps=steps,
        credential=BasicAuth(grafana.admin_user, admin_password),
        context={
            "service_account_name": grafana.service_account,
            "token_name": grafana.token_name,
        },
        persist_keys=(TOKEN_KEY,),
    )


def build_tasks(config: BootstrapConfig, *, admin_token: str, admin_password: str) -> List[ProvisioningTask]:
    """Database first: dashboards provisioned later read from it."""

    return [
        build_database_task(config, admin_token),
        build_dashboard_auth_task(config, admin_password),
    ]


__all__ = [
    "CREATE_DATABASE",
    "INIT_DASHBOARD_AUTH",
    "INIT_DATABASE",
    "build_dashboard_auth_task",
    "build_database_task",
    "build_tasks",
]
