"""Output writer for transformed objects.

Writes objects as one file per object, as a single List document to a
file or stdout, or as a chart directory.
"""

import logging
import sys
from pathlib import Path
from typing import TextIO

from composekube.chart import build_chart, manifest_filename, write_chart
from composekube.models import ResourceObject
from composekube.options import ConvertOptions
from composekube.serialize import object_list, serialize

logger = logging.getLogger(__name__)


class OutputWriter:
    """Writes transformer output according to conversion options.

    The writer:
    - Packages objects as a chart when chart generation is requested
    - Writes a single List document to stdout or to the out-file
    - Otherwise writes one <name>-<kind>.json|yaml file per object
    """

    def __init__(
        self,
        options: ConvertOptions,
        output_dir: Path | None = None,
        stream: TextIO | None = None,
    ) -> None:
        """Initialize output writer.

        Args:
            options: Validated conversion options
            output_dir: Directory for per-object files and charts
                (default: current directory)
            stream: Stream used for stdout output (default: sys.stdout)
        """
        self.options = options
        self.output_dir = Path(output_dir) if output_dir else Path.cwd()
        self.stream = stream

    @property
    def extension(self) -> str:
        return "yaml" if self.options.generate_yaml else "json"

    def write(self, objects: list[ResourceObject], app_name: str) -> list[Path]:
        """Write objects.

        Args:
            objects: Objects produced by a transformer
            app_name: Application name, used to name charts

        Returns:
            Paths written (chart directory, out-file or object files);
            empty when writing to stdout

        Raises:
            OSError: If file writing fails
        """
        if self.options.create_chart:
            root = self.output_dir
            if self.options.out_file:
                root = Path(self.options.out_file)
            return [write_chart(build_chart(app_name, objects), root)]

        if self.options.to_stdout:
            stream = self.stream or sys.stdout
            stream.write(self._serialize_list(objects))
            return []

        if self.options.out_file:
            path = Path(self.options.out_file)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(self._serialize_list(objects), encoding="utf-8")
            logger.info(f"File {path} created")
            return [path]

        self.output_dir.mkdir(parents=True, exist_ok=True)
        paths: list[Path] = []
        for obj in objects:
            path = self.output_dir / manifest_filename(obj, self.extension)
            path.write_text(
                serialize(obj.to_manifest(), self.options.generate_yaml),
                encoding="utf-8",
            )
            logger.info(f"File {path} created")
            paths.append(path)
        return paths

    def _serialize_list(self, objects: list[ResourceObject]) -> str:
        return serialize(object_list(objects), self.options.generate_yaml)
