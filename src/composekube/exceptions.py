"""Custom exceptions for the conversion pipeline."""


class ComposeKubeError(Exception):
    """Base exception for all conversion errors."""

    pass


class ConfigurationError(ComposeKubeError):
    """Raised when conversion options are invalid or contradict each other.

    The user has to fix the command-line flags; nothing has been loaded
    or transformed when this is raised.
    """

    pass


class FormatError(ComposeKubeError):
    """Raised when an input file does not match the syntax of its loader.

    Covers missing files, YAML/JSON syntax errors and documents whose
    top level is not a mapping.
    """

    pass


class SchemaError(ComposeKubeError):
    """Raised when an input file parses but its content is invalid.

    This error indicates that required fields are missing or have the
    wrong shape, for example a service without an image or a
    depends_on entry naming an unknown service.
    """

    pass


class ValidationError(ComposeKubeError):
    """Raised when a model/options combination cannot be transformed.

    Typically a controller kind that the selected platform does not
    support, or two services whose names collide once normalized.
    """

    pass


class EscalatedWarningError(ComposeKubeError):
    """Raised for a conversion warning when warnings are treated as errors."""

    pass


class ClusterError(ComposeKubeError):
    """Raised when talking to the cluster API fails."""

    pass


class InputError(ComposeKubeError):
    """Raised when interactive input stays invalid after all attempts."""

    pass
