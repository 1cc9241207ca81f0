"""OpenShift transformer.

Emits DeploymentConfigs plus one ImageStream per image repository. Each
DeploymentConfig redeploys on configuration changes and, when its image
maps onto an image stream tag, on image changes.
"""

import logging
from typing import Any, NamedTuple

from composekube.models import ApplicationModel, ControllerKind, ResourceObject
from composekube.naming import (
    SELECTOR_LABEL,
    derive_image_stream_name,
    split_image_reference,
)
from composekube.transformer.base import PlatformCapabilities, ServiceUnit, Transformer

logger = logging.getLogger(__name__)


class ImageStreamPlan(NamedTuple):
    """Image streams of an application.

    Attributes:
        streams: Image stream objects keyed by the first service using them
        triggers: Image stream tag ("name:tag") keyed by service name
    """

    streams: dict[str, list[ResourceObject]]
    triggers: dict[str, str]


class OpenShiftTransformer(Transformer):
    """Emits DeploymentConfigs and ImageStreams."""

    capabilities = PlatformCapabilities(
        name="openshift",
        controller_kinds=frozenset({ControllerKind.DEPLOYMENT_CONFIG}),
        image_streams=True,
        deployment_triggers=True,
    )

    def _plan(self, model: ApplicationModel, names: dict[str, str]) -> ImageStreamPlan:
        if not self.capabilities.image_streams:
            return ImageStreamPlan(streams={}, triggers={})

        repositories: dict[str, str] = {}
        owners: dict[str, str] = {}
        tags: dict[str, dict[str, str]] = {}
        triggers: dict[str, str] = {}

        for service_name, service in model.sorted_services():
            repository, tag = split_image_reference(service.image)
            try:
                stream_name = derive_image_stream_name(service.image)
            except ValueError as e:
                self.context.warn(f"No image stream for service '{service_name}': {e}")
                continue

            if stream_name not in repositories:
                repositories[stream_name] = repository
                owners[stream_name] = service_name
                tags[stream_name] = {}
            elif repositories[stream_name] != repository:
                self.context.warn(
                    f"Image '{service.image}' of service '{service_name}' conflicts "
                    f"with image stream '{stream_name}' of '{repositories[stream_name]}'"
                    " - no image change trigger"
                )
                continue

            known = tags[stream_name].get(tag)
            if known is not None and known != service.image:
                self.context.warn(
                    f"Image '{service.image}' of service '{service_name}' conflicts "
                    f"with '{known}' for tag '{stream_name}:{tag}' - no image change "
                    "trigger"
                )
                continue

            tags[stream_name][tag] = service.image
            triggers[service_name] = f"{stream_name}:{tag}"

        streams: dict[str, list[ResourceObject]] = {}
        for stream_name, owner in owners.items():
            logger.debug(f"Image stream '{stream_name}' emitted with service '{owner}'")
            streams.setdefault(owner, []).append(
                ResourceObject(
                    api_version="image.openshift.io/v1",
                    kind="ImageStream",
                    name=stream_name,
                    labels={SELECTOR_LABEL: names[owner]},
                    spec={
                        "tags": [
                            {
                                "name": tag,
                                "from": {"kind": "DockerImage", "name": image},
                            }
                            for tag, image in sorted(tags[stream_name].items())
                        ]
                    },
                )
            )

        return ImageStreamPlan(streams=streams, triggers=triggers)

    def _auxiliary_objects(
        self, unit: ServiceUnit, plan: ImageStreamPlan
    ) -> list[ResourceObject]:
        return list(plan.streams.get(unit.service_name, []))

    def _build_controller(
        self, kind: ControllerKind, unit: ServiceUnit, plan: ImageStreamPlan
    ) -> ResourceObject:
        spec: dict[str, Any] = {
            "replicas": unit.replicas,
            "selector": dict(unit.labels),
            "template": self._template_copy(unit),
        }

        if self.capabilities.deployment_triggers:
            triggers: list[dict[str, Any]] = [{"type": "ConfigChange"}]
            stream_tag = plan.triggers.get(unit.service_name)
            if stream_tag:
                triggers.append(
                    {
                        "type": "ImageChange",
                        "imageChangeParams": {
                            "automatic": True,
                            "containerNames": [unit.object_name],
                            "from": {"kind": "ImageStreamTag", "name": stream_tag},
                        },
                    }
                )
            spec["triggers"] = triggers

        return ResourceObject(
            api_version="apps.openshift.io/v1",
            kind=kind.value,
            **self._metadata(unit),
            spec=spec,
        )
