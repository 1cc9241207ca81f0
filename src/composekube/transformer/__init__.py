"""Transformers mapping the normalized model onto platform objects."""

from composekube.models import ConversionContext, Platform
from composekube.transformer.base import PlatformCapabilities, Transformer
from composekube.transformer.kubernetes import KubernetesTransformer
from composekube.transformer.openshift import OpenShiftTransformer

__all__ = [
    "KubernetesTransformer",
    "OpenShiftTransformer",
    "PlatformCapabilities",
    "Transformer",
    "get_transformer",
]


def get_transformer(platform: Platform, context: ConversionContext) -> Transformer:
    """Create the transformer for a target platform.

    Args:
        platform: Target platform
        context: Conversion context receiving warnings

    Returns:
        Transformer instance for the platform
    """
    if platform == Platform.OPENSHIFT:
        return OpenShiftTransformer(context)
    return KubernetesTransformer(context)
