"""Value types shared by the readiness gate, provisioner and orchestrator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from .errors import BootstrapError, ConfigurationInvalid, ExtractionError

AUTH_FAILURE_CODES: FrozenSet[int] = frozenset({401, 403})


@dataclass(frozen=True)
class Endpoint:
    """Network location of a dependency plus the path of its health probe."""

    host: str
    port: int
    scheme: str = "http"
    health_path: str = "/health"

    def __post_init__(self) -> None:
        if not self.host:
            raise ConfigurationInvalid("Endpoint host must not be empty")
        try:
            port = int(self.port)
        except (TypeError, ValueError) as exc:
            raise ConfigurationInvalid(f"Endpoint port must be an integer, got {self.port!r}") from exc
        if not 0 < port < 65536:
            raise ConfigurationInvalid(f"Endpoint port out of range: {self.port}")

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"

    @property
    def health_url(self) -> str:
        return self.url(self.health_path)

    def url(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return self.base_url + path

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


class Credential(ABC):
    """Opaque authentication material rendered into ``requests`` kwargs."""

    @abstractmethod
    def request_kwargs(self) -> Dict[str, Any]:
        ...


@dataclass(frozen=True, repr=False)
class BearerToken(Credential):
    token: str
    scheme: str = "Bearer"

    def request_kwargs(self) -> Dict[str, Any]:
        return {"headers": {"Authorization": f"{self.scheme} {self.token}"}}

    def with_scheme(self, scheme: str) -> "BearerToken":
        return BearerToken(token=self.token, scheme=scheme)

    def __repr__(self) -> str:
        return f"BearerToken(scheme={self.scheme!r}, token='{self.token[:6]}...')"


@dataclass(frozen=True, repr=False)
class BasicAuth(Credential):
    username: str
    password: str

    def request_kwargs(self) -> Dict[str, Any]:
        return {"auth": (self.username, self.password)}

    def __repr__(self) -> str:
        return f"BasicAuth(username={self.username!r}, password='***')"


@dataclass(frozen=True)
class StepRequest:
    """A single HTTP call, relative to the dependency's endpoint."""

    method: str
    path: str
    json: Any = None
    params: Optional[Mapping[str, str]] = None


RequestBuilder = Callable[[Mapping[str, str]], StepRequest]
ResponseExtractor = Callable[[Any], str]


@dataclass(frozen=True)
class ProvisioningStep:
    """Declarative description of one REST call and how to classify it."""

    name: str
    request_builder: RequestBuilder
    expected_success_codes: FrozenSet[int]
    idempotent_codes: FrozenSet[int] = frozenset()
    response_extractor: Optional[ResponseExtractor] = None
    context_key: Optional[str] = None
    condition: Optional[Callable[[Mapping[str, str]], bool]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "expected_success_codes", frozenset(self.expected_success_codes))
        object.__setattr__(self, "idempotent_codes", frozenset(self.idempotent_codes))

        if not self.expected_success_codes:
            raise ConfigurationInvalid(f"Step {self.name!r} declares no success codes")
        overlap = self.expected_success_codes & self.idempotent_codes
        if overlap:
            raise ConfigurationInvalid(
                f"Step {self.name!r} lists {sorted(overlap)} as both success and idempotent"
            )
        auth_codes = (self.expected_success_codes | self.idempotent_codes) & AUTH_FAILURE_CODES
        if auth_codes:
            raise ConfigurationInvalid(
                f"Step {self.name!r} cannot treat authentication failures {sorted(auth_codes)} as success"
            )
        if (self.response_extractor is None) != (self.context_key is None):
            raise ConfigurationInvalid(
                f"Step {self.name!r} needs both a response extractor and a context key, or neither"
            )

    def applies_to(self, context: Mapping[str, str]) -> bool:
        return self.condition is None or bool(self.condition(context))


class Outcome(str, Enum):
    CREATED = "Created"
    ALREADY_EXISTS = "AlreadyExists"
    FAILED = "Failed"


@dataclass(frozen=True)
class ProvisioningResult:
    step_name: str
    outcome: Outcome
    http_status: Optional[int]
    body: Any = None
    extracted_value: Optional[str] = None


class TaskStatus(str, Enum):
    SUCCESS = "Success"
    FAILURE = "Failure"
    CANCELLED = "Cancelled"


@dataclass(frozen=True)
class TaskOutcome:
    task_name: str
    outcome: TaskStatus
    error_detail: Optional[str] = None
    results: Tuple[ProvisioningResult, ...] = ()


@dataclass(frozen=True)
class ProvisioningTask:
    """One readiness-gate-plus-provisioning unit of the pipeline.

    ``credential`` authenticates provisioning calls, ``health_credential`` the
    health probe (``None`` for unauthenticated probes). ``context`` seeds the
    values request builders read; ``persist_keys`` names extracted values that
    are handed to the output sink once the whole run succeeded.
    """

    name: str
    endpoint: Endpoint
    steps: Tuple[ProvisioningStep, ...]
    credential: Optional[Credential] = None
    health_credential: Optional[Credential] = None
    context: Mapping[str, str] = field(default_factory=dict)
    persist_keys: Tuple[str, ...] = ()


@dataclass
class RunSummary:
    outcomes: List[TaskOutcome] = field(default_factory=list)
    persisted: Dict[str, Dict[str, str]] = field(default_factory=dict)
    error: Optional[BootstrapError] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and all(o.outcome is TaskStatus.SUCCESS for o in self.outcomes)

    @property
    def failed_task(self) -> Optional[str]:
        for outcome in self.outcomes:
            if outcome.outcome is not TaskStatus.SUCCESS:
                return outcome.task_name
        return None

    @property
    def exit_code(self) -> int:
        if self.error is not None:
            return self.error.exit_code
        return 0 if self.succeeded else 1


# --------------------------------------------------------------------------- #
# Response extractors.
# --------------------------------------------------------------------------- #


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def json_field(name: str) -> ResponseExtractor:
    """Return an extractor pulling the top-level ``name`` field as a string."""

    def _extract(body: Any) -> str:
        if not isinstance(body, dict):
            raise ExtractionError(f"expected a JSON object containing {name!r}")
        value = body.get(name)
        if value is None or value == "":
            raise ExtractionError(f"response has no {name!r} field")
        return _stringify(value)

    return _extract


def matching_item_field(
    collection: str,
    match_key: str,
    match_value: str,
    field_name: str,
) -> ResponseExtractor:
    """Extract ``field_name`` of the item in ``body[collection]`` whose ``match_key`` equals ``match_value``."""

    def _extract(body: Any) -> str:
        items: Iterable[Any]
        if isinstance(body, dict):
            items = body.get(collection) or []
            if not isinstance(items, list):
                raise ExtractionError(f"expected {collection!r} to be a JSON array, got {type(items).__name__}")
        elif isinstance(body, list):
            items = body
        else:
            raise ExtractionError(f"expected a JSON object containing {collection!r}")

        for item in items:
            if isinstance(item, dict) and item.get(match_key) == match_value:
                value = item.get(field_name)
                if value is None or value == "":
                    break
                return _stringify(value)
        raise ExtractionError(f"no {collection!r} entry with {match_key}={match_value!r} and a {field_name!r}")

    return _extract


__all__ = [
    "AUTH_FAILURE_CODES",
    "BasicAuth",
    "BearerToken",
    "Credential",
    "Endpoint",
    "Outcome",
    "ProvisioningResult",
    "ProvisioningStep",
    "ProvisioningTask",
    "RunSummary",
    "StepRequest",
    "TaskOutcome",
    "TaskStatus",
    "json_field",
    "matching_item_field",
]
