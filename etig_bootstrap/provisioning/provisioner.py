"""Sequential, idempotent REST provisioning against a ready dependency."""

from __future__ import annotations

from typing import Any, Dict, List, MutableMapping, Optional, Sequence

import requests

from ..utils.logging_setup import get_logger
from .errors import AuthenticationFailed, ExtractionError, ProvisioningAborted
from .models import (
    AUTH_FAILURE_CODES,
    Credential,
    Endpoint,
    Outcome,
    ProvisioningResult,
    ProvisioningStep,
)

DEFAULT_REQUEST_TIMEOUT = 10.0


def _decode_body(response: requests.Response) -> Any:
    if not response.content:
        return ""
    try:
        return response.json()
    except ValueError:
        return response.text


class IdempotentProvisioner:
    """Run provisioning steps in order, threading extracted values through ``context``.

    A step whose status is in its idempotent set counts as ``AlreadyExists``
    and the pipeline continues; anything outside the success and idempotent
    sets aborts the remaining steps, since later requests are built from the
    values earlier steps extract.
    """

    def __init__(
        self,
        session: requests.Session,
        endpoint: Endpoint,
        *,
        credential: Optional[Credential] = None,
        request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT,
        task_name: Optional[str] = None,
    ) -> None:
        self.session = session
        self.endpoint = endpoint
        self.credential = credential
        self.request_timeout_seconds = request_timeout_seconds
        self.task_name = task_name
        self.logger = get_logger("provisioner")

    def _extra(self, step: ProvisioningStep, **fields: Any) -> Dict[str, Any]:
        return {"task": self.task_name, "step": step.name, **fields}

    def _send(self, step: ProvisioningStep, context: MutableMapping[str, str]) -> requests.Response:
        try:
            request = step.request_builder(context)
        except KeyError as exc:
            raise ProvisioningAborted(step.name, f"missing context value {exc.args[0]!r}") from exc

        kwargs: Dict[str, Any] = self.credential.request_kwargs() if self.credential else {}
        headers = dict(kwargs.pop("headers", {}))
        headers.setdefault("Accept", "application/json")
        if request.json is not None:
            kwargs["json"] = request.json
        if request.params:
            kwargs["params"] = dict(request.params)

        url = self.endpoint.url(request.path)
        self.logger.info("%s %s", request.method.upper(), url, extra=self._extra(step))
        try:
            return self.session.request(
                request.method.upper(),
                url,
                headers=headers,
                timeout=self.request_timeout_seconds,
                **kwargs,
            )
        except requests.exceptions.RequestException as exc:
            raise ProvisioningAborted(step.name, f"transport error: {exc}") from exc

    def _classify(
        self,
        step: ProvisioningStep,
        response: requests.Response,
        context: MutableMapping[str, str],
    ) -> ProvisioningResult:
        status = response.status_code
        body = _decode_body(response)

        if status in step.idempotent_codes:
            self.logger.info(
                "Already exists (HTTP %s) - no action needed",
                status,
                extra=self._extra(step, http_status=status),
            )
            return ProvisioningResult(step.name, Outcome.ALREADY_EXISTS, status, body)

        if status in step.expected_success_codes:
            value = None
            if step.response_extractor is not None:
                try:
                    value = step.response_extractor(body)
                except ExtractionError as exc:
                    exc.step_name = step.name
                    exc.http_status = status
                    exc.body = body
                    raise
                context[step.context_key] = value
            self.logger.info("Created (HTTP %s)", status, extra=self._extra(step, http_status=status))
            return ProvisioningResult(step.name, Outcome.CREATED, status, body, value)

        if status in AUTH_FAILURE_CODES:
            raise AuthenticationFailed(
                step.name,
                "authentication failed, check credentials",
                http_status=status,
                body=body,
            )
        raise ProvisioningAborted(
            step.name,
            "unexpected response status",
            http_status=status,
            body=body,
        )

    def run(
        self,
        steps: Sequence[ProvisioningStep],
        context: MutableMapping[str, str],
    ) -> List[ProvisioningResult]:
        results: List[ProvisioningResult] = []
        for step in steps:
            if not step.applies_to(context):
                self.logger.info("Skipped, condition not met", extra=self._extra(step))
                continue
            try:
                response = self._send(step, context)
                results.append(self._classify(step, response, context))
            except ProvisioningAborted as exc:
                exc.completed = list(results)
                exc.result = ProvisioningResult(step.name, Outcome.FAILED, exc.http_status, exc.body)
                self.logger.error(
                    "Provisioning aborted at %s",
                    exc,
                    extra=self._extra(step, http_status=exc.http_status),
                )
                raise
        return results


__all__ = ["IdempotentProvisioner"]
