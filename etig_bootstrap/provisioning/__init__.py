"""Readiness gating, idempotent REST provisioning and task orchestration."""

from .errors import (
    AuthenticationFailed,
    BootstrapError,
    ConfigurationInvalid,
    ExtractionError,
    OperationCancelled,
    OutputWriteFailed,
    ProvisioningAborted,
    ReadinessTimeout,
    TokenFileInvalid,
    TokenFileMissing,
)
from .models import (
    BasicAuth,
    BearerToken,
    Credential,
    Endpoint,
    Outcome,
    ProvisioningResult,
    ProvisioningStep,
    ProvisioningTask,
    RunSummary,
    StepRequest,
    TaskOutcome,
    TaskStatus,
    json_field,
    matching_item_field,
)
from .orchestrator import Orchestrator, OutputSink
from .provisioner import IdempotentProvisioner
from .readiness import Readiness, ReadinessGate

__all__ = [
    "AuthenticationFailed",
    "BasicAuth",
    "BearerToken",
    "BootstrapError",
    "ConfigurationInvalid",
    "Credential",
    "Endpoint",
    "ExtractionError",
    "IdempotentProvisioner",
    "OperationCancelled",
    "Orchestrator",
    "Outcome",
    "OutputSink",
    "OutputWriteFailed",
    "ProvisioningAborted",
    "ProvisioningResult",
    "ProvisioningStep",
    "ProvisioningTask",
    "Readiness",
    "ReadinessGate",
    "ReadinessTimeout",
    "RunSummary",
    "StepRequest",
    "TaskOutcome",
    "TaskStatus",
    "TokenFileInvalid",
    "TokenFileMissing",
    "json_field",
    "matching_item_field",
]
