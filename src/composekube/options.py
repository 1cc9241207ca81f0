"""Conversion options and their validation."""

from pydantic import BaseModel, ConfigDict, Field

from composekube.exceptions import ConfigurationError
from composekube.models import ControllerKind, Platform

DEFAULT_COMPOSE_FILE = "docker-compose.yml"


class ConvertOptions(BaseModel):
    """User intent for a single conversion.

    Built once from command-line flags, validated with validate_options()
    and then only read by loaders, transformers and writers.
    """

    model_config = ConfigDict(frozen=True)

    create_deployment: bool = Field(False, description="Emit Deployments")
    create_daemonset: bool = Field(False, description="Emit DaemonSets")
    create_replication_controller: bool = Field(
        False, description="Emit ReplicationControllers"
    )
    create_deployment_config: bool = Field(
        False, description="Emit OpenShift DeploymentConfigs"
    )
    to_stdout: bool = Field(False, description="Write all objects to stdout")
    out_file: str | None = Field(None, description="Write all objects to this file")
    create_chart: bool = Field(False, description="Package objects as a chart")
    generate_yaml: bool = Field(False, description="Emit YAML instead of JSON")
    # Range is checked by validate_options so the error is a ConfigurationError
    replicas: int | None = Field(None, description="Replica count override")
    input_files: list[str] = Field(default_factory=lambda: [DEFAULT_COMPOSE_FILE])
    bundle_file: str | None = Field(None, description="Application bundle path")

    @property
    def controller_kinds(self) -> tuple[ControllerKind, ...]:
        """Selected controller kinds in canonical order, Deployment if none."""
        flags = {
            ControllerKind.DEPLOYMENT: self.create_deployment,
            ControllerKind.DAEMONSET: self.create_daemonset,
            ControllerKind.REPLICATION_CONTROLLER: self.create_replication_controller,
            ControllerKind.DEPLOYMENT_CONFIG: self.create_deployment_config,
        }
        selected = tuple(kind for kind in ControllerKind if flags[kind])
        return selected or (ControllerKind.DEPLOYMENT,)

    @property
    def platform(self) -> Platform:
        """Target platform implied by the selected controller kinds."""
        if self.create_deployment_config:
            return Platform.OPENSHIFT
        return Platform.KUBERNETES

    @property
    def single_output(self) -> bool:
        """Whether all objects go to a single artifact."""
        return self.to_stdout or bool(self.out_file)


def validate_options(
    options: ConvertOptions,
    single_output: bool,
    bundle_file: str | None,
    input_file: str | None,
) -> None:
    """Validate conversion options before any input is loaded.

    Args:
        options: Options to validate
        single_output: Whether output is constrained to one artifact
        bundle_file: Bundle path given on the command line, if any
        input_file: Compose path given on the command line, if any

    Raises:
        ConfigurationError: If any rule is violated
    """
    if options.out_file and options.to_stdout:
        raise ConfigurationError("--out and --stdout can't be set at the same time")

    if options.create_chart and options.to_stdout:
        raise ConfigurationError(
            "chart cannot be generated when --stdout is specified"
        )

    if options.replicas is not None and options.replicas < 0:
        raise ConfigurationError("--replicas cannot be negative")

    if single_output:
        count = sum(
            [
                options.create_deployment,
                options.create_daemonset,
                options.create_replication_controller,
                options.create_deployment_config,
            ]
        )
        if count > 1:
            raise ConfigurationError(
                "only one kind of controller can be generated when --out or "
                "--stdout is specified"
            )

    if bundle_file and input_file and input_file != DEFAULT_COMPOSE_FILE:
        raise ConfigurationError(
            "compose file and bundle file cannot be specified at the same time"
        )
