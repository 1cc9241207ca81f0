"""Minimal cluster API client used by the up and down commands.

Reads the connection of the current kubeconfig context and talks to the
cluster's REST API with requests. Only object creation and deletion by
service label are supported.
"""

import base64
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import requests
import yaml
from pydantic import BaseModel, Field

from composekube.exceptions import ClusterError, ConfigurationError, ValidationError
from composekube.models import ResourceObject
from composekube.naming import SELECTOR_LABEL, derive_object_name

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "default"
DEFAULT_KUBECONFIG = Path("~/.kube/config")

# Collection path per object kind
RESOURCE_PATHS = {
    "Deployment": "/apis/apps/v1/namespaces/{namespace}/deployments",
    "DaemonSet": "/apis/apps/v1/namespaces/{namespace}/daemonsets",
    "ReplicationController": "/api/v1/namespaces/{namespace}/replicationcontrollers",
    "Service": "/api/v1/namespaces/{namespace}/services",
    "PersistentVolumeClaim": "/api/v1/namespaces/{namespace}/persistentvolumeclaims",
    "DeploymentConfig": (
        "/apis/apps.openshift.io/v1/namespaces/{namespace}/deploymentconfigs"
    ),
    "ImageStream": "/apis/image.openshift.io/v1/namespaces/{namespace}/imagestreams",
}


class ClusterConfig(BaseModel):
    """Connection settings for one cluster."""

    server: str = Field(min_length=1, description="API server URL")
    namespace: str = Field(DEFAULT_NAMESPACE, description="Default namespace")
    token: str | None = Field(None, description="Bearer token")
    certificate_authority: str | None = Field(None, description="CA bundle path")
    client_certificate: str | None = Field(None, description="Client cert path")
    client_key: str | None = Field(None, description="Client key path")
    insecure_skip_tls_verify: bool = False
    temp_files: list[str] = Field(
        default_factory=list, description="Decoded credential files to remove"
    )


def _named(entries: list[dict[str, Any]] | None, name: str, section: str) -> dict:
    for entry in entries or []:
        if entry.get("name") == name:
            return entry.get(section) or {}
    raise ConfigurationError(f"kubeconfig has no {section} named '{name}'")


def _data_file(data: str, suffix: str) -> str:
    """Write base64 kubeconfig data to a temporary file and return its path."""
    with tempfile.NamedTemporaryFile(
        prefix="composekube-", suffix=suffix, delete=False
    ) as f:
        f.write(base64.b64decode(data))
    return f.name


def load_cluster_config(
    path: str | Path | None = None, context_name: str | None = None
) -> ClusterConfig:
    """Load cluster settings from a kubeconfig file.

    Args:
        path: Kubeconfig path (default: $KUBECONFIG, then ~/.kube/config)
        context_name: Context to use (default: current-context)

    Returns:
        ClusterConfig for the selected context

    Raises:
        ConfigurationError: If the kubeconfig is missing or incomplete
    """
    if path is None:
        env_path = os.environ.get("KUBECONFIG", "").split(os.pathsep)[0]
        path = env_path or DEFAULT_KUBECONFIG
    path = Path(path).expanduser()

    if not path.is_file():
        raise ConfigurationError(f"kubeconfig not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in kubeconfig {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"kubeconfig {path} must be a YAML dictionary")

    context_name = context_name or data.get("current-context")
    if not context_name:
        raise ConfigurationError(f"kubeconfig {path} has no current-context")

    context = _named(data.get("contexts"), context_name, "context")
    cluster = _named(data.get("clusters"), context.get("cluster"), "cluster")
    user = {}
    if context.get("user"):
        user = _named(data.get("users"), context["user"], "user")

    if not cluster.get("server"):
        raise ConfigurationError(f"Cluster of context '{context_name}' has no server")

    temp_files: list[str] = []
    ca = cluster.get("certificate-authority")
    if cluster.get("certificate-authority-data"):
        ca = _data_file(cluster["certificate-authority-data"], ".crt")
        temp_files.append(ca)
    cert = user.get("client-certificate")
    if user.get("client-certificate-data"):
        cert = _data_file(user["client-certificate-data"], ".crt")
        temp_files.append(cert)
    key = user.get("client-key")
    if user.get("client-key-data"):
        key = _data_file(user["client-key-data"], ".key")
        temp_files.append(key)

    return ClusterConfig(
        server=cluster["server"].rstrip("/"),
        namespace=context.get("namespace") or DEFAULT_NAMESPACE,
        token=user.get("token"),
        certificate_authority=ca,
        client_certificate=cert,
        client_key=key,
        insecure_skip_tls_verify=bool(cluster.get("insecure-skip-tls-verify", False)),
        temp_files=temp_files,
    )


class KubernetesClient:
    """Creates and deletes objects through the cluster REST API."""

    TIMEOUT_SECONDS = 30

    def __init__(
        self, config: ClusterConfig, session: requests.Session | None = None
    ) -> None:
        """Initialize client.

        Args:
            config: Cluster connection settings
            session: HTTP session (default: new session configured from config)
        """
        self.config = config
        self.session = session or requests.Session()
        if config.token:
            self.session.headers["Authorization"] = f"Bearer {config.token}"
        if config.insecure_skip_tls_verify:
            self.session.verify = False
        elif config.certificate_authority:
            self.session.verify = config.certificate_authority
        if config.client_certificate and config.client_key:
            self.session.cert = (config.client_certificate, config.client_key)

    def close(self) -> None:
        """Close the HTTP session and remove decoded credential files."""
        self.session.close()
        for path in self.config.temp_files:
            Path(path).unlink(missing_ok=True)

    def _url(self, kind: str, namespace: str, name: str | None = None) -> str:
        if kind not in RESOURCE_PATHS:
            raise ClusterError(f"Unsupported object kind: {kind}")
        url = self.config.server + RESOURCE_PATHS[kind].format(namespace=namespace)
        return f"{url}/{name}" if name else url

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            return self.session.request(
                method, url, timeout=self.TIMEOUT_SECONDS, **kwargs
            )
        except requests.RequestException as e:
            raise ClusterError(
                f"Failed to access the cluster at {self.config.server}: {e}"
            ) from e

    def create_objects(self, objects: list[ResourceObject], namespace: str) -> None:
        """Create objects in a namespace, in order.

        Args:
            objects: Objects produced by a transformer
            namespace: Target namespace

        Raises:
            ClusterError: If the cluster rejects an object
        """
        for obj in objects:
            response = self._request(
                "POST", self._url(obj.kind, namespace), json=obj.to_manifest()
            )
            if not response.ok:
                raise ClusterError(
                    f"Failed to create {obj.kind} '{obj.name}': "
                    f"{response.status_code} {response.text}"
                )
            logger.info(f"Successfully created {obj.kind}: {obj.name}")

    def delete_objects(self, service_name: str, namespace: str) -> int:
        """Delete every object labelled with a service's selector label.

        Kinds the cluster does not serve (e.g. OpenShift kinds on plain
        Kubernetes) are skipped.

        Args:
            service_name: Service name as declared in the input file
            namespace: Namespace to delete from

        Returns:
            Number of deleted objects

        Raises:
            ValidationError: If the service name has no valid object name
            ClusterError: If listing or deleting fails
        """
        try:
            object_name = derive_object_name(service_name)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        selector = f"{SELECTOR_LABEL}={object_name}"
        deleted = 0

        for kind in RESOURCE_PATHS:
            response = self._request(
                "GET", self._url(kind, namespace), params={"labelSelector": selector}
            )
            if response.status_code == 404:
                logger.debug(f"{kind} is not served by the cluster - skipping")
                continue
            if not response.ok:
                raise ClusterError(
                    f"Failed to list {kind} objects: "
                    f"{response.status_code} {response.text}"
                )

            for item in response.json().get("items", []):
                name = item["metadata"]["name"]
                result = self._request(
                    "DELETE",
                    self._url(kind, namespace, name),
                    json={"propagationPolicy": "Background"},
                )
                if not result.ok and result.status_code != 404:
                    raise ClusterError(
                        f"Failed to delete {kind} '{name}': "
                        f"{result.status_code} {result.text}"
                    )
                logger.info(f"Successfully deleted {kind}: {name}")
                deleted += 1

        return deleted
