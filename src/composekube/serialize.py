"""YAML and JSON serialization of platform objects."""

import json
from typing import Any

import yaml

from composekube.models import ResourceObject


class _NoAliasDumper(yaml.SafeDumper):
    """Safe dumper that writes repeated values in full instead of as aliases."""

    def ignore_aliases(self, data: Any) -> bool:
        return True


def dump_yaml(data: Any) -> str:
    """Serialize data as block-style YAML with sorted keys."""
    return yaml.dump(
        data,
        Dumper=_NoAliasDumper,
        default_flow_style=False,  # Use block style, not inline {}
        sort_keys=True,  # Sort keys for consistency
        allow_unicode=True,
        indent=2,
    )


def dump_json(data: Any) -> str:
    """Serialize data as indented JSON with sorted keys."""
    return json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False) + "\n"


def object_list(objects: list[ResourceObject]) -> dict[str, Any]:
    """Wrap objects into a single platform List document."""
    return {
        "apiVersion": "v1",
        "kind": "List",
        "metadata": {},
        "items": [obj.to_manifest() for obj in objects],
    }


def serialize(data: Any, generate_yaml: bool) -> str:
    """Serialize data as YAML or JSON."""
    return dump_yaml(data) if generate_yaml else dump_json(data)
