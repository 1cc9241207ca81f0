"""Loader for application bundle (.dab) files."""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from composekube.exceptions import FormatError, SchemaError
from composekube.loader.base import Loader
from composekube.models import ApplicationModel, EnvVar, ServicePort
from schemas.bundle import Bundle, BundleService

logger = logging.getLogger(__name__)

DEFAULT_NETWORK = "default"


class BundleLoader(Loader):
    """Loader for distributed application bundles.

    A bundle is a JSON document listing services with pinned image
    digests. It maps onto the same normalized model as a compose file.
    """

    def load_file(self, path: str | Path) -> ApplicationModel:
        """Load an application from a bundle file.

        Args:
            path: Path to the .dab file

        Returns:
            Normalized application model named after the file stem

        Raises:
            FormatError: If the file is missing or not a JSON object
            SchemaError: If the bundle does not match the bundle schema
        """
        path = Path(path)
        self._current_file = path
        try:
            content = self._read_text(path)
            try:
                data = json.loads(content)
            except json.JSONDecodeError as e:
                raise FormatError(self._error_context(f"Invalid JSON syntax: {e}")) from e

            if not isinstance(data, dict):
                raise FormatError(self._error_context("Bundle must be a JSON object"))

            try:
                bundle = Bundle.model_validate(data)
            except ValidationError as e:
                raise SchemaError(self._error_context(f"Invalid bundle: {e}")) from e

            logger.debug(f"Loaded bundle version {bundle.version} from {path}")
            services = {
                name: self._convert_service(name, service)
                for name, service in bundle.services.items()
            }
            return self._build_model(path.stem, services)
        finally:
            self._current_file = None

    def _convert_service(self, name: str, service: BundleService) -> dict[str, Any]:
        """Convert a bundle service into normalized service fields."""
        for key in service.model_extra or {}:
            self._warn(f"Unsupported key '{key}' in service '{name}' - ignoring")

        networks = [n for n in service.networks or [] if n != DEFAULT_NETWORK]
        if networks:
            self._warn(
                f"Networks {networks} of service '{name}' are not supported - ignoring"
            )

        fields: dict[str, Any] = {
            "image": service.image,
            "command": list(service.command or []),
            "args": list(service.args or []),
            "labels": dict(service.labels or {}),
            "ports": [
                ServicePort(container_port=port.port, protocol=port.protocol)
                for port in service.ports or []
            ],
            "environment": self._parse_env(name, service.env or []),
        }
        if service.working_dir:
            fields["working_dir"] = service.working_dir
        if service.user:
            fields["user"] = service.user
        return fields

    def _parse_env(self, service: str, entries: list[str]) -> list[EnvVar]:
        env_vars: dict[str, EnvVar] = {}
        for entry in entries:
            key, _, value = entry.partition("=")
            if not key:
                raise SchemaError(
                    self._error_context(
                        f"Invalid environment entry '{entry}' in service '{service}'"
                    )
                )
            env_vars[key] = EnvVar(name=key, value=value)
        return list(env_vars.values())
