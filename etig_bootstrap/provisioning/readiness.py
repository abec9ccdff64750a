"""Bounded polling of a dependency's health endpoint."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

import requests

from ..utils.logging_setup import get_logger
from .errors import ConfigurationInvalid, OperationCancelled, ReadinessTimeout
from .models import Credential, Endpoint

DEFAULT_REQUEST_TIMEOUT = 5.0


@dataclass(frozen=True)
class Readiness:
    attempts: int
    elapsed_seconds: float


class ReadinessGate:
    """Block until ``endpoint`` answers its health probe with a 2xx.

    The gate sleeps on ``cancel_event`` between polls, so setting the event
    (for example from a signal handler) wakes it immediately and ``wait()``
    raises :class:`OperationCancelled`.
    """

    def __init__(
        self,
        session: requests.Session,
        endpoint: Endpoint,
        *,
        timeout_seconds: float,
        poll_interval_seconds: float,
        credential: Optional[Credential] = None,
        request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        cancel_event: Optional[threading.Event] = None,
        task_name: Optional[str] = None,
    ) -> None:
        if timeout_seconds <= 0:
            raise ConfigurationInvalid(f"timeout_seconds must be positive, got {timeout_seconds}")
        if poll_interval_seconds <= 0:
            raise ConfigurationInvalid(f"poll_interval_seconds must be positive, got {poll_interval_seconds}")

        self.session = session
        self.endpoint = endpoint
        self.credential = credential
        self.timeout_seconds = float(timeout_seconds)
        self.poll_interval_seconds = float(poll_interval_seconds)
        # A hung probe must never outlast one polling interval.
        self.request_timeout_seconds = min(float(request_timeout_seconds), self.poll_interval_seconds)
        self._clock = clock
        self._cancel = cancel_event or threading.Event()
        self._log_extra = {"task": task_name, "step": "readiness"}
        self.logger = get_logger("readiness")

    def _probe(self) -> Optional[str]:
        """Issue one health request. Returns ``None`` when ready, else the reason it is not."""

        kwargs = self.credential.request_kwargs() if self.credential else {}
        try:
            response = self.session.get(
                self.endpoint.health_url,
                timeout=self.request_timeout_seconds,
                **kwargs,
            )
        except requests.exceptions.ConnectionError as exc:
            return f"connection error: {exc}"
        except requests.exceptions.Timeout:
            return f"request timed out after {self.request_timeout_seconds:g}s"
        except requests.exceptions.RequestException as exc:
            return f"request failed: {exc}"

        if 200 <= response.status_code < 300:
            return None
        return f"HTTP {response.status_code}"

    def wait(self) -> Readiness:
        start = self._clock()
        attempts = 0

        while True:
            if self._cancel.is_set():
                raise OperationCancelled(f"Cancelled while waiting for {self.endpoint}")

            attempts += 1
            reason = self._probe()
            elapsed = self._clock() - start

            if reason is None:
                self.logger.info(
                    "%s is ready! (took %.0fs, %d attempts)",
                    self.endpoint,
                    elapsed,
                    attempts,
                    extra=self._log_extra,
                )
                return Readiness(attempts=attempts, elapsed_seconds=elapsed)

            if elapsed >= self.timeout_seconds:
                self.logger.error(
                    "%s failed to become ready within %g seconds (%s)",
                    self.endpoint,
                    self.timeout_seconds,
                    reason,
                    extra=self._log_extra,
                )
                raise ReadinessTimeout(
                    str(self.endpoint),
                    attempts=attempts,
                    elapsed_seconds=elapsed,
                    timeout_seconds=self.timeout_seconds,
                    last_error=reason,
                )

            self.logger.info(
                "%s not ready yet, waiting... (%.0fs elapsed, attempt %d: %s)",
                self.endpoint,
                elapsed,
                attempts,
                reason,
                extra=self._log_extra,
            )
            delay = min(self.poll_interval_seconds, self.timeout_seconds - elapsed)
            if self._cancel.wait(delay):
                raise OperationCancelled(f"Cancelled while waiting for {self.endpoint}")


__all__ = ["Readiness", "ReadinessGate"]
