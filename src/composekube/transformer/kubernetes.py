"""Kubernetes transformer."""

from typing import Any

from composekube.models import ControllerKind, ResourceObject
from composekube.transformer.base import PlatformCapabilities, ServiceUnit, Transformer


class KubernetesTransformer(Transformer):
    """Emits Deployments, DaemonSets or ReplicationControllers."""

    capabilities = PlatformCapabilities(
        name="kubernetes",
        controller_kinds=frozenset(
            {
                ControllerKind.DEPLOYMENT,
                ControllerKind.DAEMONSET,
                ControllerKind.REPLICATION_CONTROLLER,
            }
        ),
        image_streams=False,
        deployment_triggers=False,
    )

    def _build_controller(
        self, kind: ControllerKind, unit: ServiceUnit, plan: Any
    ) -> ResourceObject:
        template = self._template_copy(unit)

        if kind == ControllerKind.REPLICATION_CONTROLLER:
            return ResourceObject(
                api_version="v1",
                kind=kind.value,
                **self._metadata(unit),
                spec={
                    "replicas": unit.replicas,
                    "selector": dict(unit.labels),
                    "template": template,
                },
            )

        spec: dict[str, Any] = {
            "selector": {"matchLabels": dict(unit.labels)},
            "template": template,
        }
        # DaemonSets run one pod per node and have no replica count
        if kind == ControllerKind.DEPLOYMENT:
            spec = {"replicas": unit.replicas, **spec}

        return ResourceObject(
            api_version="apps/v1",
            kind=kind.value,
            **self._metadata(unit),
            spec=spec,
        )
