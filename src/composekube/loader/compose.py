"""Loader for compose files, including multi-file overrides."""

import logging
import os
import re
import shlex
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from composekube.exceptions import FormatError, SchemaError
from composekube.loader.base import Loader
from composekube.models import (
    ApplicationModel,
    ConversionContext,
    EnvVar,
    ResourceLimits,
    RestartPolicy,
    ServicePort,
    VolumeMount,
)
from composekube.naming import VOLUME_SIZE_LABEL

logger = logging.getLogger(__name__)

DEFAULT_APP_NAME = "app"

# Top-level keys that carry no services
TOP_LEVEL_KEYS = {
    "version",
    "name",
    "services",
    "volumes",
    "networks",
    "secrets",
    "configs",
}

RESTART_POLICIES = {
    "always": RestartPolicy.ALWAYS,
    "unless-stopped": RestartPolicy.ALWAYS,
    "any": RestartPolicy.ALWAYS,
    "on-failure": RestartPolicy.ON_FAILURE,
    "no": RestartPolicy.NEVER,
    "none": RestartPolicy.NEVER,
}

# Binary multiplier and platform suffix per compose memory unit
MEMORY_UNITS = {
    "b": (1, ""),
    "k": (1024, "Ki"),
    "m": (1024**2, "Mi"),
    "g": (1024**3, "Gi"),
}

INTERPOLATION_PATTERN = re.compile(
    r"\$(?:(?P<escaped>\$)"
    r"|\{(?P<braced>[A-Za-z_][A-Za-z0-9_]*)(?:(?P<sep>:?-)(?P<default>[^}]*))?\}"
    r"|(?P<named>[A-Za-z_][A-Za-z0-9_]*))"
)

# Keys of list fields whose entries override earlier entries with the same key
MERGE_KEYS: dict[str, Callable[[Any], Any]] = {
    "ports": lambda port: (port.container_port, port.protocol),
    "environment": lambda env: env.name,
    "volumes": lambda volume: volume.target,
}


def parse_memory(value: Any) -> str:
    """Convert a compose memory value to a platform quantity.

    Args:
        value: Byte count or string such as "512m", "1g", "1.5gb"

    Returns:
        Quantity string (e.g., "512Mi")

    Raises:
        ValueError: If the value is not a valid memory size

    Examples:
        >>> parse_memory("512m")
        "512Mi"
        >>> parse_memory(1048576)
        "1048576"
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)

    match = re.fullmatch(r"\s*(\d+(?:\.\d+)?)\s*([bkmg])?b?\s*", str(value).lower())
    if not match:
        raise ValueError(f"Invalid memory size: {value!r}")

    number, unit = match.groups()
    factor, suffix = MEMORY_UNITS[unit or "b"]
    if "." in number:
        return str(int(float(number) * factor))
    return f"{number}{suffix}"


def parse_cpus(value: Any) -> str:
    """Convert a compose CPU count to a millicore quantity.

    Examples:
        >>> parse_cpus("0.5")
        "500m"
    """
    try:
        millicores = round(float(value) * 1000)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid CPU count: {value!r}") from e
    if millicores <= 0:
        raise ValueError(f"Invalid CPU count: {value!r}")
    return f"{millicores}m"


def merge_keyed(
    base: list[Any], override: list[Any], key: Callable[[Any], Any]
) -> list[Any]:
    """Concatenate two lists, replacing base entries that share a key.

    Replaced entries keep their position; new entries are appended.
    """
    result = list(base)
    positions = {key(item): i for i, item in enumerate(result)}
    for item in override:
        item_key = key(item)
        if item_key in positions:
            result[positions[item_key]] = item
        else:
            positions[item_key] = len(result)
            result.append(item)
    return result


def merge_service_fields(
    base: dict[str, Any], override: dict[str, Any]
) -> dict[str, Any]:
    """Merge normalized service fields of an override file into a base.

    Fields present in the override replace base fields, except for keyed
    lists (ports, environment, volumes), labels, depends_on and resource
    limits, which are merged entry by entry.

    Args:
        base: Normalized fields from earlier files
        override: Normalized fields from a later file

    Returns:
        New merged field dictionary
    """
    merged = dict(base)
    for field, value in override.items():
        if field in MERGE_KEYS:
            merged[field] = merge_keyed(base.get(field, []), value, MERGE_KEYS[field])
        elif field == "labels":
            merged[field] = {**base.get(field, {}), **value}
        elif field == "depends_on":
            existing = base.get(field, [])
            merged[field] = existing + [dep for dep in value if dep not in existing]
        elif field == "resources" and field in base:
            merged[field] = ResourceLimits(
                **{
                    **base[field].model_dump(exclude_none=True),
                    **value.model_dump(exclude_none=True),
                }
            )
        else:
            merged[field] = value
    return merged


class ComposeLoader(Loader):
    """Loader for compose documents.

    Handles version 1 files (services at the top level) and later versions
    (services under a 'services' key). Several files are merged in order,
    later files overriding earlier ones.

    Attributes:
        environ: Variables available to ${VAR} interpolation
    """

    def __init__(
        self, context: ConversionContext, environ: Mapping[str, str] | None = None
    ) -> None:
        """Initialize loader.

        Args:
            context: Conversion context receiving warnings
            environ: Interpolation variables (default: process environment)
        """
        super().__init__(context)
        self.environ = os.environ if environ is None else environ

    def load_file(self, path: str | Path) -> ApplicationModel:
        return self.load_files([path])

    def load_files(self, paths: list[str | Path]) -> ApplicationModel:
        """Load and merge compose files.

        Args:
            paths: Base file followed by override files

        Returns:
            Normalized application model

        Raises:
            FormatError: If a file is missing or not a YAML mapping
            SchemaError: If a service definition is invalid
        """
        if not paths:
            raise FormatError("No compose file given")

        app_name: str | None = None
        merged: dict[str, dict[str, Any]] = {}

        for raw_path in paths:
            path = Path(raw_path)
            self._current_file = path
            try:
                data = self._read_document(path)
                if "services" in data and data.get("name"):
                    app_name = str(data["name"])
                for key, service_data in self._extract_services(data).items():
                    service_name = str(key)
                    fields = self._parse_service(service_name, service_data)
                    if service_name in merged:
                        logger.debug(f"Merging service '{service_name}' from {path}")
                        merged[service_name] = merge_service_fields(
                            merged[service_name], fields
                        )
                    else:
                        merged[service_name] = fields
            finally:
                self._current_file = None

        for fields in merged.values():
            self._apply_volume_size(fields)

        if not app_name:
            app_name = Path(paths[0]).resolve().parent.name or DEFAULT_APP_NAME

        return self._build_model(app_name, merged)

    def _read_document(self, path: Path) -> dict[str, Any]:
        """Read, parse and interpolate a compose document."""
        content = self._read_text(path)
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise FormatError(self._error_context(f"Invalid YAML syntax: {e}")) from e

        if data is None:
            raise FormatError(self._error_context("Compose file is empty"))
        if not isinstance(data, dict):
            raise FormatError(
                self._error_context("Compose file must be a YAML dictionary")
            )

        return self._interpolate(data)

    def _interpolate(self, value: Any) -> Any:
        """Substitute $VAR, ${VAR}, ${VAR:-default} and $$ in strings."""
        if isinstance(value, dict):
            return {key: self._interpolate(item) for key, item in value.items()}
        if isinstance(value, list):
            return [self._interpolate(item) for item in value]
        if not isinstance(value, str):
            return value

        def substitute(match: re.Match) -> str:
            if match.group("escaped"):
                return "$"
            name = match.group("braced") or match.group("named")
            current = self.environ.get(name)
            sep = match.group("sep")
            if sep == ":-" and not current:
                return match.group("default")
            if sep == "-" and current is None:
                return match.group("default")
            if current is None:
                self._warn(f"Variable '{name}' is not set, substituting an empty string")
                return ""
            return current

        return INTERPOLATION_PATTERN.sub(substitute, value)

    def _extract_services(self, data: dict[str, Any]) -> dict[str, Any]:
        """Return the service mapping of a version 1 or later document."""
        if "services" in data:
            for key in data:
                if key not in TOP_LEVEL_KEYS and not str(key).startswith("x-"):
                    self._warn(f"Unsupported top-level key '{key}' - ignoring")
            services = data["services"]
        elif "version" in data:
            raise SchemaError(self._error_context("Missing 'services'"))
        else:
            # Version 1: every top-level key is a service
            services = {
                key: value
                for key, value in data.items()
                if not str(key).startswith("x-")
            }

        if not isinstance(services, dict):
            raise SchemaError(self._error_context("'services' must be a mapping"))
        if not services:
            raise SchemaError(self._error_context("Missing or empty 'services'"))
        return services

    def _parse_service(self, name: str, data: Any) -> dict[str, Any]:
        """Parse one service definition into normalized fields.

        Only keys present in the document appear in the result, so that
        merging can tell declared fields from defaults.

        Args:
            name: Service name
            data: Service definition from the document

        Returns:
            Dictionary of ServiceConfig field values
        """
        if not isinstance(data, dict):
            raise SchemaError(
                self._error_context(f"Service '{name}' must be a mapping")
            )

        fields: dict[str, Any] = {}
        environment: list[EnvVar] | None = None

        for key, value in data.items():
            if str(key).startswith("x-"):
                continue
            if key == "image":
                fields["image"] = str(value)
            elif key == "ports":
                ports = self._parse_ports(name, value)
                fields["ports"] = fields.get("ports", []) + ports
            elif key == "expose":
                exposed = [
                    port
                    for item in self._as_list(name, key, value)
                    for port in self._parse_exposed(name, item)
                ]
                fields["ports"] = fields.get("ports", []) + exposed
            elif key == "env_file":
                environment = merge_keyed(
                    self._parse_env_files(name, value),
                    environment or [],
                    MERGE_KEYS["environment"],
                )
            elif key == "environment":
                environment = merge_keyed(
                    environment or [],
                    self._parse_environment(name, value),
                    MERGE_KEYS["environment"],
                )
            elif key == "volumes":
                fields["volumes"] = [
                    self._parse_volume(name, item)
                    for item in self._as_list(name, key, value)
                ]
            elif key == "entrypoint":
                fields["command"] = self._parse_command(name, key, value)
            elif key == "command":
                fields["args"] = self._parse_command(name, key, value)
            elif key == "depends_on":
                fields["depends_on"] = self._parse_depends_on(name, value)
            elif key == "restart":
                fields["restart"] = self._parse_restart(name, value)
            elif key == "mem_limit":
                fields["resources"] = self._update_resources(
                    fields, memory=self._convert(name, key, parse_memory, value)
                )
            elif key == "cpus":
                fields["resources"] = self._update_resources(
                    fields, cpu=self._convert(name, key, parse_cpus, value)
                )
            elif key == "deploy":
                self._parse_deploy(name, value, fields)
            elif key == "scale":
                fields["replicas"] = self._convert(name, key, int, value)
            elif key == "labels":
                fields["labels"] = self._parse_labels(name, value)
            elif key in ("working_dir", "user"):
                fields[key] = str(value)
            elif key in ("privileged", "tty", "stdin_open"):
                fields[key] = bool(value)
            else:
                self._warn(f"Unsupported key '{key}' in service '{name}' - ignoring")

        if environment is not None:
            fields["environment"] = environment

        return fields

    def _as_list(self, service: str, key: str, value: Any) -> list[Any]:
        if not isinstance(value, list):
            raise SchemaError(
                self._error_context(f"'{key}' of service '{service}' must be a list")
            )
        return value

    def _convert(
        self, service: str, key: str, converter: Callable[[Any], Any], value: Any
    ) -> Any:
        try:
            return converter(value)
        except (TypeError, ValueError) as e:
            raise SchemaError(
                self._error_context(f"Invalid '{key}' in service '{service}': {e}")
            ) from e

    def _make_port(self, service: str, spec: Any, **values: Any) -> ServicePort:
        try:
            return ServicePort(**values)
        except ValidationError as e:
            raise SchemaError(
                self._error_context(f"Invalid port '{spec}' in service '{service}': {e}")
            ) from e

    def _parse_ports(self, service: str, value: Any) -> list[ServicePort]:
        ports: list[ServicePort] = []
        for item in self._as_list(service, "ports", value):
            if isinstance(item, dict):
                ports.append(self._parse_port_mapping(service, item))
            else:
                ports.extend(self._parse_port_string(service, str(item)))
        return ports

    def _parse_exposed(self, service: str, item: Any) -> list[ServicePort]:
        spec = str(item)
        if ":" in spec:
            raise SchemaError(
                self._error_context(
                    f"Exposed port '{spec}' in service '{service}' cannot be published"
                )
            )
        return self._parse_port_string(service, spec)

    def _parse_port_string(self, service: str, spec: str) -> list[ServicePort]:
        """Parse "[ip:][published:]container[/protocol]" port syntax.

        Port ranges such as "8000-8001:9000-9001" expand to one port each.
        """
        mapping, _, protocol = spec.partition("/")
        protocol = (protocol or "tcp").lower()
        parts = mapping.split(":")

        if len(parts) == 1:
            published_str, container_str = "", parts[0]
        elif len(parts) == 2:
            published_str, container_str = parts
        elif len(parts) == 3:
            host_ip, published_str, container_str = parts
            self._warn(
                f"Host IP '{host_ip}' of port '{spec}' in service '{service}' "
                "is not supported - ignoring"
            )
        else:
            raise SchemaError(
                self._error_context(f"Invalid port '{spec}' in service '{service}'")
            )

        try:
            container_ports = self._parse_port_range(container_str)
            published_ports = (
                self._parse_port_range(published_str) if published_str else None
            )
        except ValueError as e:
            raise SchemaError(
                self._error_context(f"Invalid port '{spec}' in service '{service}': {e}")
            ) from e

        if published_ports is not None and len(published_ports) != len(container_ports):
            raise SchemaError(
                self._error_context(
                    f"Port range '{spec}' in service '{service}' has mismatched lengths"
                )
            )

        return [
            self._make_port(
                service,
                spec,
                container_port=container,
                published_port=published_ports[i] if published_ports else None,
                protocol=protocol,
            )
            for i, container in enumerate(container_ports)
        ]

    @staticmethod
    def _parse_port_range(value: str) -> list[int]:
        start, _, end = value.strip().partition("-")
        if not end:
            return [int(start)]
        first, last = int(start), int(end)
        if last < first:
            raise ValueError(f"descending range {value}")
        return list(range(first, last + 1))

    def _parse_port_mapping(self, service: str, item: dict[str, Any]) -> ServicePort:
        """Parse long port syntax: {target, published, protocol}."""
        if "target" not in item:
            raise SchemaError(
                self._error_context(f"Port {item} in service '{service}' has no target")
            )
        published = item.get("published")
        return self._make_port(
            service,
            item,
            container_port=self._convert(service, "ports", int, item["target"]),
            published_port=(
                self._convert(service, "ports", int, published) if published else None
            ),
            protocol=str(item.get("protocol", "tcp")).lower(),
        )

    def _parse_environment(self, service: str, value: Any) -> list[EnvVar]:
        """Parse environment in mapping or list-of-"KEY=VALUE" syntax.

        A variable without a value takes its value from the interpolation
        environment, or the empty string.
        """
        if isinstance(value, dict):
            items = list(value.items())
        elif isinstance(value, list):
            items = []
            for entry in value:
                key, sep, entry_value = str(entry).partition("=")
                items.append((key, entry_value if sep else None))
        else:
            raise SchemaError(
                self._error_context(
                    f"'environment' of service '{service}' must be a mapping or list"
                )
            )

        env_vars: list[EnvVar] = []
        for key, entry_value in items:
            if entry_value is None:
                entry_value = self.environ.get(str(key), "")
            elif isinstance(entry_value, bool):
                entry_value = str(entry_value).lower()
            try:
                env = EnvVar(name=str(key), value=str(entry_value))
            except ValidationError as e:
                raise SchemaError(
                    self._error_context(
                        f"Invalid environment variable in service '{service}': {e}"
                    )
                ) from e
            env_vars = merge_keyed(env_vars, [env], MERGE_KEYS["environment"])
        return env_vars

    def _parse_env_files(self, service: str, value: Any) -> list[EnvVar]:
        """Read env_file entries relative to the current compose file."""
        if isinstance(value, str):
            files = [value]
        else:
            files = self._as_list(service, "env_file", value)
        base_dir = self._current_file.parent if self._current_file else Path(".")

        env_vars: list[EnvVar] = []
        for env_file in files:
            path = base_dir / str(env_file)
            lines = []
            for line in self._read_text(path).splitlines():
                line = line.strip()
                if line and not line.startswith("#"):
                    lines.append(line)
            env_vars = merge_keyed(
                env_vars,
                self._parse_environment(service, lines),
                MERGE_KEYS["environment"],
            )
        return env_vars

    def _parse_volume(self, service: str, item: Any) -> VolumeMount:
        """Parse short "source:target[:mode]" or long volume syntax."""
        if isinstance(item, dict):
            volume_type = item.get("type", "volume")
            if volume_type not in ("volume", "bind", "tmpfs"):
                self._warn(
                    f"Volume type '{volume_type}' in service '{service}' is not supported, "
                    "using an anonymous volume"
                )
            source = item.get("source") if volume_type in ("volume", "bind") else None
            values = {
                "source": source,
                "target": item.get("target"),
                "read_only": bool(item.get("read_only", False)),
            }
        else:
            parts = str(item).split(":")
            if len(parts) == 1:
                values = {"target": parts[0]}
            elif len(parts) in (2, 3):
                mode = parts[2].split(",") if len(parts) == 3 else []
                values = {
                    "source": parts[0],
                    "target": parts[1],
                    "read_only": "ro" in mode,
                }
            else:
                raise SchemaError(
                    self._error_context(f"Invalid volume '{item}' in service '{service}'")
                )

        try:
            return VolumeMount(**values)
        except ValidationError as e:
            raise SchemaError(
                self._error_context(f"Invalid volume '{item}' in service '{service}': {e}")
            ) from e

    def _parse_command(self, service: str, key: str, value: Any) -> list[str]:
        if isinstance(value, str):
            return self._convert(service, key, shlex.split, value)
        return [str(part) for part in self._as_list(service, key, value)]

    def _parse_depends_on(self, service: str, value: Any) -> list[str]:
        if isinstance(value, dict):
            return [str(name) for name in value]
        return [str(name) for name in self._as_list(service, "depends_on", value)]

    def _parse_restart(self, service: str, value: Any) -> RestartPolicy:
        # YAML 1.1 reads an unquoted 'no' as false
        if value is False:
            value = "no"
        # "on-failure:5" carries a retry count the platform has no field for
        policy = str(value).split(":", 1)[0].lower()
        if policy not in RESTART_POLICIES:
            raise SchemaError(
                self._error_context(
                    f"Invalid restart policy '{value}' in service '{service}'"
                )
            )
        return RESTART_POLICIES[policy]

    def _parse_labels(self, service: str, value: Any) -> dict[str, str]:
        if isinstance(value, dict):
            return {str(k): "" if v is None else str(v) for k, v in value.items()}
        labels: dict[str, str] = {}
        for entry in self._as_list(service, "labels", value):
            key, _, label_value = str(entry).partition("=")
            labels[key] = label_value
        return labels

    def _update_resources(
        self, fields: dict[str, Any], **limits: str
    ) -> ResourceLimits:
        current = fields.get("resources", ResourceLimits())
        return current.model_copy(update=limits)

    def _parse_deploy(self, service: str, value: Any, fields: dict[str, Any]) -> None:
        """Parse the supported parts of the deploy section into fields."""
        if not isinstance(value, dict):
            raise SchemaError(
                self._error_context(f"'deploy' of service '{service}' must be a mapping")
            )

        for key, item in value.items():
            if key == "replicas":
                fields["replicas"] = self._convert(
                    service, "deploy.replicas", int, item
                )
            elif key == "resources" and isinstance(item, dict):
                limits = item.get("limits") or {}
                if "cpus" in limits:
                    cpu = self._convert(
                        service, "deploy.resources", parse_cpus, limits["cpus"]
                    )
                    fields["resources"] = self._update_resources(fields, cpu=cpu)
                if "memory" in limits:
                    memory = self._convert(
                        service, "deploy.resources", parse_memory, limits["memory"]
                    )
                    fields["resources"] = self._update_resources(fields, memory=memory)
                if item.get("reservations"):
                    self._warn(
                        f"Resource reservations of service '{service}' "
                        "are not supported - ignoring"
                    )
            elif key == "restart_policy" and isinstance(item, dict):
                if "condition" in item:
                    fields["restart"] = self._parse_restart(service, item["condition"])
            else:
                self._warn(
                    f"Unsupported key 'deploy.{key}' in service '{service}' - ignoring"
                )

    @staticmethod
    def _apply_volume_size(fields: dict[str, Any]) -> None:
        """Give claims without a size the service's volume size label."""
        size = fields.get("labels", {}).get(VOLUME_SIZE_LABEL)
        if size and fields.get("volumes"):
            fields["volumes"] = [
                volume if volume.size else volume.model_copy(update={"size": size})
                for volume in fields["volumes"]
            ]
