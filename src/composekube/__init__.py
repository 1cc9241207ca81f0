"""Convert compose files and application bundles to Kubernetes and OpenShift objects."""

__version__ = "0.3.0"
