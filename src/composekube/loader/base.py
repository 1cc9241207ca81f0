"""Base class for input loaders."""

from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError

from composekube.exceptions import FormatError, SchemaError
from composekube.models import ApplicationModel, ConversionContext, ServiceConfig


class Loader(ABC):
    """Parses one input format into an ApplicationModel.

    Attributes:
        context: Conversion context receiving non-fatal warnings
    """

    def __init__(self, context: ConversionContext) -> None:
        self.context = context
        self._current_file: Path | None = None

    @abstractmethod
    def load_file(self, path: str | Path) -> ApplicationModel:
        """Load an application from a single file.

        Args:
            path: Path to the input document

        Returns:
            Normalized application model

        Raises:
            FormatError: If the file cannot be parsed as this format
            SchemaError: If required fields are missing or malformed
        """

    def load_files(self, paths: list[str | Path]) -> ApplicationModel:
        """Load an application from several files.

        Formats without override semantics accept exactly one file.
        """
        if len(paths) != 1:
            raise FormatError(
                f"{type(self).__name__} loads exactly one file, got {len(paths)}"
            )
        return self.load_file(paths[0])

    def _read_text(self, path: Path) -> str:
        if not path.is_file():
            raise FormatError(f"File not found: {path}")
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise FormatError(f"Cannot read {path}: {e}") from e

    def _error_context(self, message: str) -> str:
        """Add file context to error message."""
        if self._current_file:
            return f"{message} in {self._current_file}"
        return message

    def _warn(self, message: str) -> None:
        """Report a warning with optional file context."""
        if self._current_file:
            message = f"{self._current_file}: {message}"
        self.context.warn(message)

    def _build_model(
        self, name: str, services: dict[str, dict]
    ) -> ApplicationModel:
        """Validate normalized service fields into an ApplicationModel.

        Args:
            name: Application name
            services: Normalized field dictionaries keyed by service name

        Returns:
            Validated application model

        Raises:
            SchemaError: If any service or the model fails validation
        """
        configs: dict[str, ServiceConfig] = {}
        for service_name, fields in services.items():
            if not fields.get("image"):
                raise SchemaError(
                    self._error_context(f"Service '{service_name}' has no image")
                )
            try:
                configs[service_name] = ServiceConfig(**fields)
            except ValidationError as e:
                raise SchemaError(
                    self._error_context(f"Invalid service '{service_name}': {e}")
                ) from e

        try:
            return ApplicationModel(name=name, services=configs)
        except ValidationError as e:
            raise SchemaError(self._error_context(f"Invalid application: {e}")) from e
