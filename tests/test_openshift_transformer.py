"""Tests for the OpenShift transformer."""

import pytest

from composekube.exceptions import ValidationError
from composekube.models import ApplicationModel, ServiceConfig, ServicePort
from composekube.naming import SELECTOR_LABEL
from composekube.options import ConvertOptions
from composekube.transformer import OpenShiftTransformer


@pytest.fixture
def transformer(context) -> OpenShiftTransformer:
    return OpenShiftTransformer(context)


@pytest.fixture
def options() -> ConvertOptions:
    return ConvertOptions(create_deployment_config=True)


def app(**services: ServiceConfig) -> ApplicationModel:
    return ApplicationModel(name="app", services=services)


class TestDeploymentConfig:
    """Tests for DeploymentConfig output."""

    def test_web_service(self, transformer, options):
        """Test image stream, DeploymentConfig and Service for one service."""
        model = app(
            web=ServiceConfig(
                image="nginx:1.25", ports=[ServicePort(container_port=80)]
            )
        )
        objects = transformer.transform(model, options)

        assert [(o.kind, o.name) for o in objects] == [
            ("ImageStream", "nginx"),
            ("DeploymentConfig", "web"),
            ("Service", "web"),
        ]

        config = objects[1]
        assert config.api_version == "apps.openshift.io/v1"
        assert config.spec["replicas"] == 1
        assert config.spec["selector"] == {SELECTOR_LABEL: "web"}
        assert config.spec["triggers"] == [
            {"type": "ConfigChange"},
            {
                "type": "ImageChange",
                "imageChangeParams": {
                    "automatic": True,
                    "containerNames": ["web"],
                    "from": {"kind": "ImageStreamTag", "name": "nginx:1.25"},
                },
            },
        ]

    def test_replicas_option(self, transformer):
        """Test that the replicas option applies to DeploymentConfigs."""
        model = app(web=ServiceConfig(image="nginx"))
        options = ConvertOptions(create_deployment_config=True, replicas=3)
        config = transformer.transform(model, options)[1]
        assert config.spec["replicas"] == 3

    def test_kubernetes_kinds_unsupported(self, transformer):
        """Test that Kubernetes controller kinds are rejected."""
        model = app(web=ServiceConfig(image="nginx"))
        with pytest.raises(ValidationError, match="not supported by openshift"):
            transformer.transform(model, ConvertOptions(create_deployment=True))


class TestImageStreams:
    """Tests for image stream planning."""

    def test_stream_tag(self, transformer, options):
        """Test the tags of an image stream."""
        model = app(web=ServiceConfig(image="quay.io/org/shop:2.0"))
        stream = transformer.transform(model, options)[0]

        assert stream.api_version == "image.openshift.io/v1"
        assert stream.name == "shop"
        assert stream.labels == {SELECTOR_LABEL: "web"}
        assert stream.spec == {
            "tags": [
                {
                    "name": "2.0",
                    "from": {"kind": "DockerImage", "name": "quay.io/org/shop:2.0"},
                }
            ]
        }

    def test_shared_repository(self, transformer, options):
        """Test one stream per repository, emitted before its first user."""
        model = app(
            api=ServiceConfig(image="shop:1"),
            worker=ServiceConfig(image="shop:2"),
        )
        objects = transformer.transform(model, options)

        assert [(o.kind, o.name) for o in objects] == [
            ("ImageStream", "shop"),
            ("DeploymentConfig", "api"),
            ("DeploymentConfig", "worker"),
        ]
        assert [tag["name"] for tag in objects[0].spec["tags"]] == ["1", "2"]

        worker_trigger = objects[2].spec["triggers"][1]
        assert worker_trigger["imageChangeParams"]["from"]["name"] == "shop:2"

    def test_same_image_twice(self, transformer, options):
        """Test that services sharing an image share the stream tag."""
        model = app(a=ServiceConfig(image="redis:7"), b=ServiceConfig(image="redis:7"))
        objects = transformer.transform(model, options)

        assert [o.kind for o in objects] == [
            "ImageStream",
            "DeploymentConfig",
            "DeploymentConfig",
        ]
        assert len(objects[0].spec["tags"]) == 1
        assert len(objects[2].spec["triggers"]) == 2

    def test_conflicting_repository_warns(self, transformer, options, context):
        """Test that a stream name clash omits the image change trigger."""
        model = app(
            a=ServiceConfig(image="docker.io/one/app:1"),
            b=ServiceConfig(image="docker.io/two/app:1"),
        )
        objects = transformer.transform(model, options)

        assert [o.kind for o in objects].count("ImageStream") == 1
        assert objects[-1].spec["triggers"] == [{"type": "ConfigChange"}]
        assert any("conflicts" in w for w in context.warnings)
