"""Platform-independent part of the model to object mapping.

A transformer walks the services of an ApplicationModel in name order
and emits, per service, any auxiliary objects the platform needs, one
controller per selected controller kind, a paired service object when
ports are declared, and one volume claim per named or host volume.
Variants differ only through their capability table and the controller
objects they build.
"""

import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, NamedTuple

from composekube.exceptions import ValidationError
from composekube.models import (
    ApplicationModel,
    ControllerKind,
    ConversionContext,
    ResourceObject,
    RestartPolicy,
    ServiceConfig,
)
from composekube.naming import SELECTOR_LABEL, compute_volume_name, derive_object_name
from composekube.options import ConvertOptions

logger = logging.getLogger(__name__)

DEFAULT_REPLICAS = 1
DEFAULT_VOLUME_SIZE = "100Mi"


class PlatformCapabilities(NamedTuple):
    """What a target platform supports."""

    name: str
    controller_kinds: frozenset[ControllerKind]
    image_streams: bool
    deployment_triggers: bool


class ServiceUnit(NamedTuple):
    """Everything needed to build the controllers of one service."""

    service_name: str
    object_name: str
    service: ServiceConfig
    labels: dict[str, str]
    replicas: int
    template: dict[str, Any]


class Transformer(ABC):
    """Maps a normalized application onto platform objects.

    Attributes:
        context: Conversion context receiving non-fatal warnings
    """

    capabilities: PlatformCapabilities

    def __init__(self, context: ConversionContext) -> None:
        self.context = context

    def transform(
        self, model: ApplicationModel, options: ConvertOptions
    ) -> list[ResourceObject]:
        """Transform an application into an ordered list of objects.

        Args:
            model: Normalized application model
            options: Validated conversion options

        Returns:
            Objects in emission order, deterministic for a given input

        Raises:
            ValidationError: If a selected controller kind is not supported
                by this platform or two service names collide
        """
        kinds = options.controller_kinds
        unsupported = [k for k in kinds if k not in self.capabilities.controller_kinds]
        if unsupported:
            raise ValidationError(
                f"Controller kind(s) {', '.join(unsupported)} not supported by "
                f"{self.capabilities.name}"
            )

        names = self._assign_object_names(model)
        plan = self._plan(model, names)

        objects: list[ResourceObject] = []
        for service_name, service in model.sorted_services():
            object_name = names[service_name]
            logger.debug(f"Transforming service '{service_name}' as '{object_name}'")

            labels = {SELECTOR_LABEL: object_name}
            template, claims = self._pod_template(object_name, service, labels)
            unit = ServiceUnit(
                service_name=service_name,
                object_name=object_name,
                service=service,
                labels=labels,
                replicas=self._replicas(service, options),
                template=template,
            )

            objects.extend(self._auxiliary_objects(unit, plan))
            for kind in kinds:
                objects.append(self._build_controller(kind, unit, plan))
            if service.ports:
                objects.append(self._build_service(unit))
            objects.extend(claims)

        self._check_unique_names(objects)
        return objects

    def _plan(self, model: ApplicationModel, names: dict[str, str]) -> Any:
        """Compute variant-specific state shared by all services."""
        return None

    def _auxiliary_objects(self, unit: ServiceUnit, plan: Any) -> list[ResourceObject]:
        """Objects emitted before the controllers of a service."""
        return []

    @abstractmethod
    def _build_controller(
        self, kind: ControllerKind, unit: ServiceUnit, plan: Any
    ) -> ResourceObject:
        """Build one controller object of the given kind."""

    @staticmethod
    def _check_unique_names(objects: list[ResourceObject]) -> None:
        seen: set[tuple[str, str]] = set()
        for obj in objects:
            key = (obj.kind, obj.name)
            if key in seen:
                raise ValidationError(
                    f"More than one {obj.kind} named '{obj.name}' - "
                    "shorten the service names"
                )
            seen.add(key)

    def _assign_object_names(self, model: ApplicationModel) -> dict[str, str]:
        names: dict[str, str] = {}
        owners: dict[str, str] = {}
        for service_name, _ in model.sorted_services():
            try:
                object_name = derive_object_name(service_name)
            except ValueError as e:
                raise ValidationError(str(e)) from e
            if object_name in owners:
                raise ValidationError(
                    f"Services '{owners[object_name]}' and '{service_name}' both "
                    f"map to object name '{object_name}'"
                )
            owners[object_name] = service_name
            names[service_name] = object_name
        return names

    @staticmethod
    def _replicas(service: ServiceConfig, options: ConvertOptions) -> int:
        if options.replicas is not None:
            return options.replicas
        if service.replicas is not None:
            return service.replicas
        return DEFAULT_REPLICAS

    def _metadata(self, unit: ServiceUnit) -> dict[str, Any]:
        """Common ResourceObject fields for objects of a service."""
        return {
            "name": unit.object_name,
            "labels": dict(unit.labels),
            "annotations": dict(unit.service.labels),
        }

    def _pod_template(
        self, object_name: str, service: ServiceConfig, labels: dict[str, str]
    ) -> tuple[dict[str, Any], list[ResourceObject]]:
        """Build the pod template of a service and its volume claims.

        Args:
            object_name: Normalized service object name
            service: Service configuration
            labels: Selector labels for the pod

        Returns:
            Tuple of (pod template, claim objects)
        """
        container: dict[str, Any] = {"name": object_name, "image": service.image}
        if service.command:
            container["command"] = list(service.command)
        if service.args:
            container["args"] = list(service.args)
        if service.working_dir:
            container["workingDir"] = service.working_dir

        ports = self._container_ports(service)
        if ports:
            container["ports"] = ports
        if service.environment:
            container["env"] = [
                {"name": env.name, "value": env.value} for env in service.environment
            ]
        if not service.resources.is_empty():
            container["resources"] = {
                "limits": service.resources.model_dump(exclude_none=True)
            }

        mounts, volumes, claims = self._volumes(object_name, service, labels)
        if mounts:
            container["volumeMounts"] = mounts

        security = self._security_context(object_name, service)
        if security:
            container["securityContext"] = security
        if service.tty:
            container["tty"] = True
        if service.stdin_open:
            container["stdin"] = True

        pod_spec: dict[str, Any] = {"containers": [container]}
        if volumes:
            pod_spec["volumes"] = volumes
        if service.restart == RestartPolicy.ALWAYS:
            pod_spec["restartPolicy"] = RestartPolicy.ALWAYS.value
        elif service.restart is not None:
            self.context.warn(
                f"Restart policy '{service.restart.value}' of service "
                f"'{object_name}' is not supported by controllers - using Always"
            )

        template = {"metadata": {"labels": dict(labels)}, "spec": pod_spec}
        return template, claims

    @staticmethod
    def _container_ports(service: ServiceConfig) -> list[dict[str, Any]]:
        ports: list[dict[str, Any]] = []
        seen: set[tuple[int, str]] = set()
        for port in service.ports:
            key = (port.container_port, port.protocol)
            if key in seen:
                continue
            seen.add(key)
            ports.append(
                {
                    "containerPort": port.container_port,
                    "protocol": port.protocol.upper(),
                }
            )
        return ports

    def _security_context(
        self, object_name: str, service: ServiceConfig
    ) -> dict[str, Any]:
        security: dict[str, Any] = {}
        if service.privileged:
            security["privileged"] = True
        if service.user:
            if service.user.isdigit():
                security["runAsUser"] = int(service.user)
            else:
                self.context.warn(
                    f"User '{service.user}' of service '{object_name}' is not a "
                    "numeric UID - ignoring"
                )
        return security

    def _volumes(
        self, object_name: str, service: ServiceConfig, labels: dict[str, str]
    ) -> tuple[list[dict[str, Any]], list[dict[str, Any]], list[ResourceObject]]:
        """Map volume mounts to container mounts, pod volumes and claims."""
        mounts: list[dict[str, Any]] = []
        volumes: list[dict[str, Any]] = []
        claims: list[ResourceObject] = []
        scratch_count = 0

        for volume in service.volumes:
            if volume.kind == "anonymous":
                name = compute_volume_name(object_name, scratch_count, "empty")
                scratch_count += 1
                volumes.append({"name": name, "emptyDir": {}})
            else:
                name = compute_volume_name(object_name, len(claims))
                if volume.kind == "host":
                    logger.debug(
                        f"Host path '{volume.source}' of '{object_name}' "
                        f"becomes claim {name}"
                    )
                claims.append(
                    self._build_claim(name, volume.read_only, volume.size, labels)
                )
                volumes.append(
                    {
                        "name": name,
                        "persistentVolumeClaim": {
                            "claimName": name,
                            "readOnly": volume.read_only,
                        },
                    }
                )

            mount: dict[str, Any] = {"name": name, "mountPath": volume.target}
            if volume.read_only:
                mount["readOnly"] = True
            mounts.append(mount)

        return mounts, volumes, claims

    @staticmethod
    def _build_claim(
        name: str, read_only: bool, size: str | None, labels: dict[str, str]
    ) -> ResourceObject:
        return ResourceObject(
            api_version="v1",
            kind="PersistentVolumeClaim",
            name=name,
            labels=dict(labels),
            spec={
                "accessModes": ["ReadOnlyMany" if read_only else "ReadWriteOnce"],
                "resources": {"requests": {"storage": size or DEFAULT_VOLUME_SIZE}},
            },
        )

    def _build_service(self, unit: ServiceUnit) -> ResourceObject:
        """Build the service object exposing the declared ports."""
        ports: list[dict[str, Any]] = []
        targets: dict[tuple[int, str], int] = {}
        for port in unit.service.ports:
            service_port = port.published_port or port.container_port
            key = (service_port, port.protocol)
            if targets.get(key) == port.container_port:
                continue
            if key in targets:
                self.context.warn(
                    f"Port {service_port}/{port.protocol} of service "
                    f"'{unit.object_name}' is declared twice - ignoring duplicate"
                )
                continue
            targets[key] = port.container_port
            ports.append(
                {
                    "name": f"{service_port}-{port.protocol}",
                    "port": service_port,
                    "targetPort": port.container_port,
                    "protocol": port.protocol.upper(),
                }
            )

        return ResourceObject(
            api_version="v1",
            kind="Service",
            **self._metadata(unit),
            spec={"type": "ClusterIP", "selector": dict(unit.labels), "ports": ports},
        )

    @staticmethod
    def _template_copy(unit: ServiceUnit) -> dict[str, Any]:
        """Return a private copy of the pod template for one controller."""
        return copy.deepcopy(unit.template)
