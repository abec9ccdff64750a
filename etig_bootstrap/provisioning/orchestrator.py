"""Ordered execution of provisioning tasks with first-failure-aborts semantics."""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Mapping, Optional, Protocol, Sequence, Tuple

import requests

from ..utils.logging_setup import get_logger
from .errors import BootstrapError, OperationCancelled
from .models import ProvisioningResult, ProvisioningTask, RunSummary, TaskOutcome, TaskStatus
from .provisioner import DEFAULT_REQUEST_TIMEOUT as DEFAULT_STEP_TIMEOUT
from .provisioner import IdempotentProvisioner
from .readiness import DEFAULT_REQUEST_TIMEOUT as DEFAULT_PROBE_TIMEOUT
from .readiness import ReadinessGate


class OutputSink(Protocol):
    """Receives extracted values worth keeping once the whole run succeeded."""

    def persist(self, task_name: str, values: Mapping[str, str], context: Mapping[str, str]) -> None:
        ...


class Orchestrator:
    """Run tasks one at a time: wait for the dependency, then provision it.

    Tasks are assumed to depend on one another in list order, so the first
    failure stops the run. Errors from the taxonomy are reported through the
    returned :class:`RunSummary` rather than raised.
    """

    def __init__(
        self,
        tasks: Sequence[ProvisioningTask],
        session: requests.Session,
        *,
        timeout_seconds: float,
        poll_interval_seconds: float,
        sink: Optional[OutputSink] = None,
        probe_timeout_seconds: float = DEFAULT_PROBE_TIMEOUT,
        step_timeout_seconds: float = DEFAULT_STEP_TIMEOUT,
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.tasks = list(tasks)
        self.session = session
        self.timeout_seconds = timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.sink = sink
        self.probe_timeout_seconds = probe_timeout_seconds
        self.step_timeout_seconds = step_timeout_seconds
        self.cancel_event = cancel_event or threading.Event()
        self._clock = clock
        self.logger = get_logger("orchestrator")

    def _run_task(self, task: ProvisioningTask) -> Tuple[Dict[str, str], Tuple[ProvisioningResult, ...]]:
        gate = ReadinessGate(
            self.session,
            task.endpoint,
            timeout_seconds=self.timeout_seconds,
            poll_interval_seconds=self.poll_interval_seconds,
            credential=task.health_credential,
            request_timeout_seconds=self.probe_timeout_seconds,
            clock=self._clock,
            cancel_event=self.cancel_event,
            task_name=task.name,
        )
        gate.wait()

        if self.cancel_event.is_set():
            raise OperationCancelled(f"Cancelled before provisioning {task.name}")

        context = dict(task.context)
        provisioner = IdempotentProvisioner(
            self.session,
            task.endpoint,
            credential=task.credential,
            request_timeout_seconds=self.step_timeout_seconds,
            task_name=task.name,
        )
        results = provisioner.run(task.steps, context)
        return context, tuple(results)

    def run(self) -> RunSummary:
        summary = RunSummary()
        contexts: Dict[str, Dict[str, str]] = {}

        for index, task in enumerate(self.tasks, start=1):
            self.logger.info(
                "Step %d/%d: %s (%s)",
                index,
                len(self.tasks),
                task.name,
                task.endpoint,
                extra={"task": task.name},
            )
            try:
                contexts[task.name], results = self._run_task(task)
            except OperationCancelled as exc:
                self.logger.warning("Task %s cancelled: %s", task.name, exc, extra={"task": task.name})
                summary.outcomes.append(TaskOutcome(task.name, TaskStatus.CANCELLED, str(exc)))
                summary.error = exc
                return summary
            except BootstrapError as exc:
                self.logger.error("Task %s failed: %s", task.name, exc, extra={"task": task.name})
                completed = tuple(getattr(exc, "completed", None) or ())
                summary.outcomes.append(TaskOutcome(task.name, TaskStatus.FAILURE, str(exc), completed))
                summary.error = exc
                return summary

            summary.outcomes.append(TaskOutcome(task.name, TaskStatus.SUCCESS, results=results))
            self.logger.info("Task %s completed successfully", task.name, extra={"task": task.name})

        self._persist(summary, contexts)
        return summary

    def _persist(self, summary: RunSummary, contexts: Mapping[str, Mapping[str, str]]) -> None:
        for task in self.tasks:
            if not task.persist_keys:
                continue
            context = contexts[task.name]
            values = {key: context[key] for key in task.persist_keys if key in context}
            if not values:
                self.logger.warning(
                    "Task %s produced none of %s (already provisioned); existing output left untouched",
                    task.name,
                    ", ".join(task.persist_keys),
                )
                continue
            if self.sink is not None:
                try:
                    self.sink.persist(task.name, values, context)
                except BootstrapError as exc:
                    self.logger.error("Could not persist output of %s: %s", task.name, exc)
                    summary.error = exc
                    return
            summary.persisted[task.name] = values


__all__ = ["Orchestrator", "OutputSink"]
