"""Chart packaging of platform objects.

A chart is a directory holding Chart.yaml, a README and one manifest per
object under templates/. Chart.yaml and the README are rendered from
Jinja2 templates; the manifests are the serialized objects.
"""

import logging
from pathlib import Path
from typing import NamedTuple

import yaml
from jinja2 import Environment, FileSystemLoader, TemplateError
from pydantic import ValidationError

from composekube import __version__
from composekube.exceptions import ConfigurationError
from composekube.models import ResourceObject
from composekube.naming import derive_object_name
from composekube.serialize import dump_yaml
from schemas.chart import ChartMetadata

logger = logging.getLogger(__name__)

DEFAULT_CHART_NAME = "chart"
DEFAULT_CHART_VERSION = "0.1.0"
DEFAULT_APP_VERSION = "1.0.0"

TEMPLATE_DIR = Path(__file__).parent / "templates" / "chart"


class Chart(NamedTuple):
    """A chart ready to be written to disk."""

    metadata: ChartMetadata
    files: dict[str, str]


def setup_jinja_environment(template_dir: Path) -> Environment:
    """Set up Jinja2 environment with template directory.

    Args:
        template_dir: Path to directory containing Jinja2 templates

    Returns:
        Configured Jinja2 Environment

    Raises:
        FileNotFoundError: If template directory doesn't exist
    """
    if not template_dir.exists():
        raise FileNotFoundError(f"Template directory not found: {template_dir}")

    return Environment(
        loader=FileSystemLoader(template_dir),
        autoescape=False,  # Don't escape - we're generating YAML and Markdown
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


def chart_name(app_name: str) -> str:
    """Derive a chart name from an application name."""
    try:
        return derive_object_name(app_name)
    except ValueError:
        return DEFAULT_CHART_NAME


def manifest_filename(obj: ResourceObject, extension: str) -> str:
    """File name of an object's manifest (e.g., "web-deployment.yaml")."""
    return f"{obj.name}-{obj.kind.lower()}.{extension}"


def build_chart(
    app_name: str,
    objects: list[ResourceObject],
    version: str = DEFAULT_CHART_VERSION,
    template_dir: Path = TEMPLATE_DIR,
) -> Chart:
    """Package objects as a chart.

    Args:
        app_name: Application name the chart is named after
        objects: Objects produced by a transformer
        version: Chart version
        template_dir: Directory holding Chart.yaml.j2 and README.md.j2

    Returns:
        Chart with its metadata and file contents keyed by relative path

    Raises:
        ConfigurationError: If the chart metadata is invalid or a template
            fails to render
    """
    name = chart_name(app_name)
    try:
        metadata = ChartMetadata(
            name=name,
            description=f"A chart for the {app_name} application",
            version=version,
            app_version=DEFAULT_APP_VERSION,
            keywords=sorted({obj.kind.lower() for obj in objects}),
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid chart metadata: {e}") from e

    env = setup_jinja_environment(template_dir)
    context = {
        "chart": metadata,
        "app_name": app_name,
        "objects": objects,
        "tool_version": __version__,
    }

    files: dict[str, str] = {}
    for template_name, output_name in (
        ("Chart.yaml.j2", "Chart.yaml"),
        ("README.md.j2", "README.md"),
    ):
        try:
            files[output_name] = env.get_template(template_name).render(context)
        except TemplateError as e:
            raise ConfigurationError(
                f"Failed to render template {template_name}: {e}"
            ) from e

    # Rendered metadata must still match the schema
    try:
        ChartMetadata.model_validate(yaml.safe_load(files["Chart.yaml"]))
    except (yaml.YAMLError, ValidationError) as e:
        raise ConfigurationError(f"Rendered Chart.yaml is invalid: {e}") from e

    for obj in objects:
        files[f"templates/{manifest_filename(obj, 'yaml')}"] = dump_yaml(
            obj.to_manifest()
        )

    return Chart(metadata=metadata, files=files)


def write_chart(chart: Chart, output_dir: Path) -> Path:
    """Write a chart below an output directory.

    Args:
        chart: Chart to write
        output_dir: Directory receiving the chart directory

    Returns:
        Path to the chart directory

    Raises:
        OSError: If file writing fails
    """
    chart_dir = Path(output_dir) / chart.metadata.name
    for relative_path, content in chart.files.items():
        path = chart_dir / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        logger.debug(f"Wrote {path}")

    logger.info(f"Chart created in {chart_dir}")
    return chart_dir
