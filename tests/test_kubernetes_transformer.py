"""Tests for the Kubernetes transformer.

Tests the mapping of normalized applications to Deployments, DaemonSets,
ReplicationControllers, Services and PersistentVolumeClaims.
"""

import pytest

from composekube.exceptions import EscalatedWarningError, ValidationError
from composekube.loader.compose import ComposeLoader
from composekube.models import (
    ApplicationModel,
    ConversionContext,
    EnvVar,
    Platform,
    ResourceLimits,
    RestartPolicy,
    ServiceConfig,
    ServicePort,
    VolumeMount,
)
from composekube.naming import SELECTOR_LABEL
from composekube.options import ConvertOptions
from composekube.transformer import (
    KubernetesTransformer,
    OpenShiftTransformer,
    get_transformer,
)


@pytest.fixture
def transformer(context: ConversionContext) -> KubernetesTransformer:
    return KubernetesTransformer(context)


@pytest.fixture
def web_app() -> ApplicationModel:
    """Single published nginx service."""
    return ApplicationModel(
        name="app",
        services={
            "web": ServiceConfig(
                image="nginx:1.25",
                ports=[ServicePort(container_port=80, published_port=8080)],
            )
        },
    )


@pytest.fixture
def web_db_app() -> ApplicationModel:
    """Published web service depending on a database with a named volume."""
    return ApplicationModel(
        name="app",
        services={
            "web": ServiceConfig(
                image="nginx:1.25",
                ports=[ServicePort(container_port=80, published_port=8080)],
                depends_on=["db"],
            ),
            "db": ServiceConfig(
                image="postgres:16",
                environment=[EnvVar(name="POSTGRES_PASSWORD", value="secret")],
                volumes=[VolumeMount(source="dbdata", target="/var/lib/postgresql/data")],
            ),
        },
    )


def kinds(objects):
    return [(obj.kind, obj.name) for obj in objects]


class TestGetTransformer:
    """Tests for transformer selection."""

    def test_platforms(self, context):
        """Test that each platform selects its transformer."""
        assert isinstance(
            get_transformer(Platform.KUBERNETES, context), KubernetesTransformer
        )
        assert isinstance(
            get_transformer(Platform.OPENSHIFT, context), OpenShiftTransformer
        )


class TestDefaultConversion:
    """Tests for conversion under default options."""

    def test_web_service(self, transformer, web_app):
        """Test that one service yields a Deployment and a Service."""
        objects = transformer.transform(web_app, ConvertOptions())

        assert kinds(objects) == [("Deployment", "web"), ("Service", "web")]

        deployment, service = objects
        container = deployment.spec["template"]["spec"]["containers"][0]
        assert deployment.api_version == "apps/v1"
        assert deployment.spec["replicas"] == 1
        assert container["image"] == "nginx:1.25"
        assert container["ports"] == [{"containerPort": 80, "protocol": "TCP"}]

        assert service.spec["ports"] == [
            {"name": "8080-tcp", "port": 8080, "targetPort": 80, "protocol": "TCP"}
        ]

    def test_selector_shared(self, transformer, web_app):
        """Test that the Service selects the Deployment's pods."""
        deployment, service = transformer.transform(web_app, ConvertOptions())

        selector = {SELECTOR_LABEL: "web"}
        assert deployment.labels == selector
        assert deployment.spec["selector"] == {"matchLabels": selector}
        assert deployment.spec["template"]["metadata"]["labels"] == selector
        assert service.spec["selector"] == selector

    def test_web_db_scenario(self, transformer, web_db_app):
        """Test services in name order with claims after their controllers."""
        objects = transformer.transform(web_db_app, ConvertOptions())

        assert kinds(objects) == [
            ("Deployment", "db"),
            ("PersistentVolumeClaim", "db-claim0"),
            ("Deployment", "web"),
            ("Service", "web"),
        ]

        db = objects[0]
        pod_spec = db.spec["template"]["spec"]
        assert pod_spec["containers"][0]["env"] == [
            {"name": "POSTGRES_PASSWORD", "value": "secret"}
        ]
        assert pod_spec["containers"][0]["volumeMounts"] == [
            {"name": "db-claim0", "mountPath": "/var/lib/postgresql/data"}
        ]
        assert pod_spec["volumes"] == [
            {
                "name": "db-claim0",
                "persistentVolumeClaim": {"claimName": "db-claim0", "readOnly": False},
            }
        ]

        claim = objects[1]
        assert claim.spec == {
            "accessModes": ["ReadWriteOnce"],
            "resources": {"requests": {"storage": "100Mi"}},
        }

    def test_idempotent(self, transformer, web_db_app):
        """Test that transforming twice gives identical output."""
        first = transformer.transform(web_db_app, ConvertOptions())
        second = transformer.transform(web_db_app, ConvertOptions())
        assert [o.to_manifest() for o in first] == [o.to_manifest() for o in second]

    def test_no_service_without_ports(self, transformer):
        """Test that services without ports get no Service object."""
        model = ApplicationModel(
            name="app", services={"worker": ServiceConfig(image="busybox")}
        )
        assert kinds(transformer.transform(model, ConvertOptions())) == [
            ("Deployment", "worker")
        ]


class TestControllerKinds:
    """Tests for the selected controller kinds."""

    def test_daemonset_has_no_replicas(self, transformer, web_app):
        """Test DaemonSet output."""
        options = ConvertOptions(create_daemonset=True)
        daemonset = transformer.transform(web_app, options)[0]
        assert daemonset.kind == "DaemonSet"
        assert daemonset.api_version == "apps/v1"
        assert "replicas" not in daemonset.spec

    def test_replication_controller(self, transformer, web_app):
        """Test ReplicationController output with a plain selector."""
        options = ConvertOptions(create_replication_controller=True, replicas=3)
        rc = transformer.transform(web_app, options)[0]
        assert rc.kind == "ReplicationController"
        assert rc.api_version == "v1"
        assert rc.spec["replicas"] == 3
        assert rc.spec["selector"] == {SELECTOR_LABEL: "web"}

    def test_multiple_kinds(self, transformer, web_app):
        """Test one controller per selected kind, in canonical order."""
        options = ConvertOptions(create_deployment=True, create_daemonset=True)
        assert kinds(transformer.transform(web_app, options)) == [
            ("Deployment", "web"),
            ("DaemonSet", "web"),
            ("Service", "web"),
        ]

    def test_templates_are_independent(self, transformer, web_app):
        """Test that controllers do not share pod template objects."""
        options = ConvertOptions(create_deployment=True, create_daemonset=True)
        deployment, daemonset, _ = transformer.transform(web_app, options)
        assert deployment.spec["template"] == daemonset.spec["template"]
        assert deployment.spec["template"] is not daemonset.spec["template"]

    def test_deployment_config_unsupported(self, transformer, web_app):
        """Test that OpenShift kinds are rejected by the Kubernetes transformer."""
        options = ConvertOptions(create_deployment_config=True)
        with pytest.raises(ValidationError, match="not supported by kubernetes"):
            transformer.transform(web_app, options)


class TestReplicas:
    """Tests for replica count selection."""

    def test_option_overrides_hint(self, transformer):
        """Test that the replicas option wins over the service hint."""
        model = ApplicationModel(
            name="app", services={"web": ServiceConfig(image="nginx", replicas=4)}
        )
        deployment = transformer.transform(model, ConvertOptions(replicas=2))[0]
        assert deployment.spec["replicas"] == 2

    def test_service_hint(self, transformer):
        """Test that the service hint is used without the option."""
        model = ApplicationModel(
            name="app", services={"web": ServiceConfig(image="nginx", replicas=4)}
        )
        deployment = transformer.transform(model, ConvertOptions())[0]
        assert deployment.spec["replicas"] == 4

    def test_zero_replicas(self, transformer, web_app):
        """Test that zero replicas is emitted as is."""
        deployment = transformer.transform(web_app, ConvertOptions(replicas=0))[0]
        assert deployment.spec["replicas"] == 0


class TestNames:
    """Tests for object naming."""

    def test_service_name_normalized(self, transformer):
        """Test that service names become valid object names."""
        model = ApplicationModel(
            name="app", services={"My_Web": ServiceConfig(image="nginx")}
        )
        deployment = transformer.transform(model, ConvertOptions())[0]
        assert deployment.name == "my-web"
        container = deployment.spec["template"]["spec"]["containers"][0]
        assert container["name"] == "my-web"

    def test_collision_rejected(self, transformer):
        """Test that names colliding after normalization are rejected."""
        model = ApplicationModel(
            name="app",
            services={
                "my_web": ServiceConfig(image="nginx"),
                "my-web": ServiceConfig(image="nginx"),
            },
        )
        with pytest.raises(ValidationError, match="both map to object name"):
            transformer.transform(model, ConvertOptions())

    def test_truncated_claim_names_collide(self, transformer):
        """Test that claim names shortened to the same value are rejected."""
        model = ApplicationModel(
            name="app",
            services={
                name: ServiceConfig(
                    image="nginx", volumes=[VolumeMount(source="data", target="/data")]
                )
                for name in ("a" * 63, "a" * 56)
            },
        )
        with pytest.raises(ValidationError, match="More than one PersistentVolumeClaim"):
            transformer.transform(model, ConvertOptions())


class TestContainer:
    """Tests for container and pod fields."""

    def test_container_fields(self, transformer):
        """Test command, args, working dir, resources and security context."""
        model = ApplicationModel(
            name="app",
            services={
                "api": ServiceConfig(
                    image="python:3.12",
                    command=["python"],
                    args=["app.py"],
                    working_dir="/app",
                    resources=ResourceLimits(cpu="500m", memory="512Mi"),
                    user="1000",
                    privileged=True,
                    tty=True,
                    stdin_open=True,
                    restart=RestartPolicy.ALWAYS,
                    labels={"team": "shop"},
                )
            },
        )
        deployment = transformer.transform(model, ConvertOptions())[0]
        pod_spec = deployment.spec["template"]["spec"]
        container = pod_spec["containers"][0]

        assert container["command"] == ["python"]
        assert container["args"] == ["app.py"]
        assert container["workingDir"] == "/app"
        assert container["resources"] == {"limits": {"cpu": "500m", "memory": "512Mi"}}
        assert container["securityContext"] == {"privileged": True, "runAsUser": 1000}
        assert container["tty"] is True
        assert container["stdin"] is True
        assert pod_spec["restartPolicy"] == "Always"
        assert deployment.annotations == {"team": "shop"}

    def test_non_numeric_user_warns(self, transformer, context):
        """Test that user names are dropped with a warning."""
        model = ApplicationModel(
            name="app", services={"web": ServiceConfig(image="nginx", user="www")}
        )
        deployment = transformer.transform(model, ConvertOptions())[0]
        container = deployment.spec["template"]["spec"]["containers"][0]
        assert "securityContext" not in container
        assert any("numeric UID" in w for w in context.warnings)

    def test_restart_policy_other_than_always_warns(self, transformer, context):
        """Test that OnFailure and Never are dropped with a warning."""
        model = ApplicationModel(
            name="app",
            services={"job": ServiceConfig(image="busybox", restart=RestartPolicy.NEVER)},
        )
        deployment = transformer.transform(model, ConvertOptions())[0]
        assert "restartPolicy" not in deployment.spec["template"]["spec"]
        assert any("Restart policy 'Never'" in w for w in context.warnings)

    def test_warning_escalated(self):
        """Test that transformer warnings abort when escalated."""
        context = ConversionContext(source_format="compose", error_on_warning=True)
        model = ApplicationModel(
            name="app",
            services={"job": ServiceConfig(image="busybox", restart=RestartPolicy.NEVER)},
        )
        with pytest.raises(EscalatedWarningError):
            KubernetesTransformer(context).transform(model, ConvertOptions())


class TestVolumes:
    """Tests for volume mapping."""

    def test_claims_and_scratch_volumes(self, transformer):
        """Test claims for named and host volumes, emptyDir for anonymous ones."""
        model = ApplicationModel(
            name="app",
            services={
                "web": ServiceConfig(
                    image="nginx",
                    volumes=[
                        VolumeMount(target="/cache"),
                        VolumeMount(source="./html", target="/html", read_only=True),
                        VolumeMount(source="logs", target="/logs", size="1Gi"),
                    ],
                )
            },
        )
        objects = transformer.transform(model, ConvertOptions())

        assert kinds(objects) == [
            ("Deployment", "web"),
            ("PersistentVolumeClaim", "web-claim0"),
            ("PersistentVolumeClaim", "web-claim1"),
        ]
        pod_spec = objects[0].spec["template"]["spec"]
        assert pod_spec["volumes"][0] == {"name": "web-empty0", "emptyDir": {}}
        assert pod_spec["containers"][0]["volumeMounts"][1] == {
            "name": "web-claim0",
            "mountPath": "/html",
            "readOnly": True,
        }
        assert objects[1].spec["accessModes"] == ["ReadOnlyMany"]
        assert objects[2].spec["resources"] == {"requests": {"storage": "1Gi"}}
        assert objects[2].labels == {SELECTOR_LABEL: "web"}


class TestServicePorts:
    """Tests for Service port mapping."""

    def test_unpublished_port(self, transformer):
        """Test that unpublished ports use the container port."""
        model = ApplicationModel(
            name="app",
            services={
                "dns": ServiceConfig(
                    image="coredns",
                    ports=[ServicePort(container_port=53, protocol="udp")],
                )
            },
        )
        service = transformer.transform(model, ConvertOptions())[1]
        assert service.spec["ports"] == [
            {"name": "53-udp", "port": 53, "targetPort": 53, "protocol": "UDP"}
        ]

    def test_duplicate_service_port_warns(self, transformer, context):
        """Test that two ports published on the same port keep only the first."""
        model = ApplicationModel(
            name="app",
            services={
                "web": ServiceConfig(
                    image="nginx",
                    ports=[
                        ServicePort(container_port=80, published_port=8080),
                        ServicePort(container_port=81, published_port=8080),
                    ],
                )
            },
        )
        service = transformer.transform(model, ConvertOptions())[1]
        assert [p["targetPort"] for p in service.spec["ports"]] == [80]
        assert any("declared twice" in w for w in context.warnings)

    def test_port_and_expose_of_same_port(self, transformer, context):
        """Test that a port listed in both ports and expose is merged quietly."""
        model = ApplicationModel(
            name="app",
            services={
                "web": ServiceConfig(
                    image="nginx",
                    ports=[ServicePort(container_port=80), ServicePort(container_port=80)],
                )
            },
        )
        deployment, service = transformer.transform(model, ConvertOptions())

        assert service.spec["ports"] == [
            {"name": "80-tcp", "port": 80, "targetPort": 80, "protocol": "TCP"}
        ]
        assert deployment.spec["template"]["spec"]["containers"][0]["ports"] == [
            {"containerPort": 80, "protocol": "TCP"}
        ]
        assert context.warnings == []


class TestComposeScenario:
    """Tests transforming a loaded compose file end to end."""

    def test_published_port(self, transformer, context, write_compose):
        """Test one published port gives a Deployment and a Service."""
        path = write_compose(
            {"services": {"web": {"image": "nginx:latest", "ports": ["80:8080/tcp"]}}}
        )
        model = ComposeLoader(context, environ={}).load_file(path)

        deployment, service = transformer.transform(model, ConvertOptions())

        assert (deployment.kind, deployment.name) == ("Deployment", "web")
        assert deployment.spec["replicas"] == 1
        container = deployment.spec["template"]["spec"]["containers"][0]
        assert container["image"] == "nginx:latest"
        assert container["ports"] == [{"containerPort": 8080, "protocol": "TCP"}]
        assert (service.kind, service.name) == ("Service", "web")
        assert service.spec["ports"] == [
            {"name": "80-tcp", "port": 80, "targetPort": 8080, "protocol": "TCP"}
        ]
        assert service.spec["selector"] == {SELECTOR_LABEL: "web"}
        assert deployment.spec["selector"]["matchLabels"] == service.spec["selector"]

    def test_port_also_exposed(self, transformer, context, write_compose):
        """Test that a port under both ports and expose gives one entry."""
        path = write_compose(
            {"services": {"web": {"image": "nginx", "ports": ["80"], "expose": ["80"]}}}
        )
        model = ComposeLoader(context, environ={}).load_file(path)

        _, service = transformer.transform(model, ConvertOptions())

        assert [p["port"] for p in service.spec["ports"]] == [80]
        assert context.warnings == []
