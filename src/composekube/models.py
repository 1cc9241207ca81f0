"""Pydantic models for the normalized application model and emitted objects.

Every loader produces an ApplicationModel and every transformer consumes
one. The models are frozen once constructed so a loaded application can
be handed to a transformer without being changed along the way.
"""

import logging
from collections.abc import Iterator
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from composekube.exceptions import EscalatedWarningError

logger = logging.getLogger(__name__)


class InputFormat(StrEnum):
    """Supported input document formats."""

    COMPOSE = "compose"
    BUNDLE = "bundle"


class Platform(StrEnum):
    """Supported target platforms."""

    KUBERNETES = "kubernetes"
    OPENSHIFT = "openshift"


class ControllerKind(StrEnum):
    """Workload controller kinds, in canonical emission order."""

    DEPLOYMENT = "Deployment"
    DAEMONSET = "DaemonSet"
    REPLICATION_CONTROLLER = "ReplicationController"
    DEPLOYMENT_CONFIG = "DeploymentConfig"


class RestartPolicy(StrEnum):
    """Container restart policies as understood by the platform."""

    ALWAYS = "Always"
    ON_FAILURE = "OnFailure"
    NEVER = "Never"


class ServicePort(BaseModel):
    """A port exposed by a service container."""

    model_config = ConfigDict(frozen=True)

    container_port: int = Field(ge=1, le=65535, description="Port inside the container")
    published_port: int | None = Field(
        None, ge=1, le=65535, description="Port published to clients"
    )
    protocol: Literal["tcp", "udp"] = Field("tcp", description="Transport protocol")


class EnvVar(BaseModel):
    """Environment variable passed to a service container."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, description="Variable name")
    value: str = Field("", description="Variable value")


class VolumeMount(BaseModel):
    """Volume mounted into a service container.

    A source starting with '/', '.' or '~' is a host path, any other
    source is a named volume and a missing source is an anonymous volume.
    """

    model_config = ConfigDict(frozen=True)

    source: str | None = Field(None, description="Host path or volume name")
    target: str = Field(min_length=1, description="Mount path inside the container")
    read_only: bool = Field(False, description="Mount read-only")
    size: str | None = Field(None, description="Explicit claim capacity")

    @property
    def kind(self) -> Literal["host", "named", "anonymous"]:
        if not self.source:
            return "anonymous"
        if self.source.startswith(("/", ".", "~")):
            return "host"
        return "named"


class ResourceLimits(BaseModel):
    """Container resource limits as platform quantity strings."""

    model_config = ConfigDict(frozen=True)

    cpu: str | None = Field(None, description="CPU limit (e.g. '500m')")
    memory: str | None = Field(None, description="Memory limit (e.g. '512Mi')")

    def is_empty(self) -> bool:
        return self.cpu is None and self.memory is None


class ServiceConfig(BaseModel):
    """Configuration of a single service in the normalized model."""

    model_config = ConfigDict(frozen=True)

    image: str = Field(min_length=1, description="Container image reference")
    ports: list[ServicePort] = Field(default_factory=list)
    environment: list[EnvVar] = Field(default_factory=list)
    volumes: list[VolumeMount] = Field(default_factory=list)
    command: list[str] = Field(default_factory=list, description="Entrypoint override")
    args: list[str] = Field(default_factory=list, description="Arguments override")
    restart: RestartPolicy | None = None
    resources: ResourceLimits = Field(default_factory=ResourceLimits)
    depends_on: list[str] = Field(default_factory=list)
    replicas: int | None = Field(None, ge=0, description="Replica hint")
    labels: dict[str, str] = Field(default_factory=dict)
    working_dir: str | None = None
    user: str | None = None
    privileged: bool = False
    tty: bool = False
    stdin_open: bool = False

    @field_validator("environment")
    @classmethod
    def validate_unique_env(cls, value: list[EnvVar]) -> list[EnvVar]:
        """Validate that environment variable names are unique."""
        seen: set[str] = set()
        for env in value:
            if env.name in seen:
                raise ValueError(f"Duplicate environment variable: {env.name}")
            seen.add(env.name)
        return value


class ApplicationModel(BaseModel):
    """Normalized application: service name to service configuration."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, description="Application name")
    services: dict[str, ServiceConfig] = Field(
        min_length=1, description="Services keyed by unique name"
    )

    @model_validator(mode="after")
    def validate_dependencies(self) -> "ApplicationModel":
        """Validate that depends_on entries reference declared services."""
        for service_name, service in self.services.items():
            for dependency in service.depends_on:
                if dependency not in self.services:
                    raise ValueError(
                        f"Service '{service_name}' depends on undefined "
                        f"service '{dependency}'"
                    )
        return self

    def sorted_services(self) -> Iterator[tuple[str, ServiceConfig]]:
        """Iterate over services in lexicographic name order."""
        for name in sorted(self.services):
            yield name, self.services[name]


class ResourceObject(BaseModel):
    """A single platform object produced by a transformer."""

    model_config = ConfigDict(frozen=True)

    api_version: str
    kind: str
    name: str = Field(pattern=r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$", max_length=63)
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    spec: dict[str, Any] = Field(default_factory=dict)

    def to_manifest(self) -> dict[str, Any]:
        """Return the object as a platform manifest dictionary."""
        metadata: dict[str, Any] = {"name": self.name, "labels": dict(self.labels)}
        if self.annotations:
            metadata["annotations"] = dict(self.annotations)
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": metadata,
            "spec": self.spec,
        }


class ConversionContext(BaseModel):
    """Context object tracking the state of a conversion.

    Collects warnings raised while loading and transforming. When
    error_on_warning is set, the first warning aborts the conversion.
    """

    source_format: str = Field(min_length=1, description="Input format name")
    error_on_warning: bool = Field(False, description="Escalate warnings to errors")
    warnings: list[str] = Field(
        default_factory=list,
        description="Non-fatal warnings during conversion",
    )

    def warn(self, message: str) -> None:
        """Record a warning, or raise if warnings are treated as errors.

        Args:
            message: Warning message

        Raises:
            EscalatedWarningError: If error_on_warning is set
        """
        if self.error_on_warning:
            raise EscalatedWarningError(message)
        self.warnings.append(message)
        logger.warning(message)
