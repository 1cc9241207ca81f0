"""Object naming utilities.

This module derives platform object names from service names and
application names, and holds the label keys shared by every object.

Object names follow RFC 1123 label rules: lowercase alphanumerics and
hyphens, starting and ending with an alphanumeric, at most 63 characters.
"""

import re
import unicodedata

MAX_NAME_LENGTH = 63

# Label shared by a controller and its paired service
SELECTOR_LABEL = "io.composekube.service"

# Service label carrying an explicit volume claim size
VOLUME_SIZE_LABEL = "io.composekube.volume.size"


def derive_object_name(service_name: str) -> str:
    """Derive a platform object name from a service name.

    Normalizes the service name by:
    - Converting accented characters to ASCII
    - Converting to lowercase
    - Replacing every character outside [a-z0-9-] with a hyphen
    - Collapsing consecutive hyphens
    - Stripping leading/trailing hyphens
    - Truncating to 63 characters

    Args:
        service_name: Service name as declared in the input file

    Returns:
        Valid platform object name

    Raises:
        ValueError: If the result would be empty

    Examples:
        >>> derive_object_name("web")
        "web"
        >>> derive_object_name("My_Web.App")
        "my-web-app"
    """
    if not service_name:
        raise ValueError("Cannot derive object name from empty service name")

    normalized = unicodedata.normalize("NFKD", service_name)
    ascii_only = normalized.encode("ascii", "ignore").decode("ascii")

    result = ascii_only.lower()
    result = re.sub(r"[^a-z0-9-]", "-", result)
    result = re.sub(r"-+", "-", result)
    result = result.strip("-")

    # Truncation can expose a trailing hyphen
    result = result[:MAX_NAME_LENGTH].rstrip("-")

    if not result:
        raise ValueError(
            f"Cannot derive object name from '{service_name}': "
            "result would be empty after normalization"
        )

    return result


def compute_volume_name(object_name: str, index: int, kind: str = "claim") -> str:
    """Compute the name of the index-th volume of a service.

    Args:
        object_name: Normalized service object name
        index: Zero-based index among the service's volumes of this kind
        kind: Name infix ("claim" for volume claims, "empty" for scratch)

    Returns:
        Volume name (e.g., "web-claim0"), with the object name shortened
        so the suffix always fits
    """
    suffix = f"-{kind}{index}"
    base = object_name[: MAX_NAME_LENGTH - len(suffix)].rstrip("-")
    return f"{base}{suffix}"


def split_image_reference(image: str) -> tuple[str, str]:
    """Split an image reference into repository and tag.

    Digest references and untagged references get the "latest" tag.

    Args:
        image: Image reference (e.g., "registry:5000/org/app:1.2")

    Returns:
        Tuple of (repository, tag)

    Examples:
        >>> split_image_reference("nginx:1.25")
        ("nginx", "1.25")
        >>> split_image_reference("localhost:5000/app")
        ("localhost:5000/app", "latest")
    """
    reference = image.split("@", 1)[0]
    last_slash = reference.rfind("/")
    last_colon = reference.rfind(":")
    if last_colon > last_slash:
        return reference[:last_colon], reference[last_colon + 1 :]
    return reference, "latest"


def derive_image_stream_name(image: str) -> str:
    """Derive an image stream name from the last repository path segment.

    Args:
        image: Image reference

    Returns:
        Valid platform object name (e.g., "app" for "quay.io/org/app:1.0")
    """
    repository, _ = split_image_reference(image)
    return derive_object_name(repository.rsplit("/", 1)[-1])
