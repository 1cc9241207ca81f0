"""Loaders parsing input documents into the normalized application model."""

from composekube.loader.base import Loader
from composekube.loader.bundle import BundleLoader
from composekube.loader.compose import ComposeLoader
from composekube.models import ApplicationModel, ConversionContext, InputFormat
from composekube.options import ConvertOptions

__all__ = [
    "Loader",
    "BundleLoader",
    "ComposeLoader",
    "get_loader",
    "load_application",
]


def get_loader(input_format: InputFormat, context: ConversionContext) -> Loader:
    """Create the loader for an input format.

    Args:
        input_format: Format of the input document
        context: Conversion context receiving warnings

    Returns:
        Loader instance for the format
    """
    if input_format == InputFormat.BUNDLE:
        return BundleLoader(context)
    return ComposeLoader(context)


def load_application(
    options: ConvertOptions, context: ConversionContext
) -> ApplicationModel:
    """Load the application described by validated options.

    A bundle file selects the bundle loader, otherwise every input file
    is loaded and merged by the compose loader.

    Args:
        options: Validated conversion options
        context: Conversion context receiving warnings

    Returns:
        Normalized application model
    """
    if options.bundle_file:
        return get_loader(InputFormat.BUNDLE, context).load_file(options.bundle_file)

    loader = get_loader(InputFormat.COMPOSE, context)
    return loader.load_files(options.input_files)
