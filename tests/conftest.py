"""Shared fixtures for composekube tests."""

import copy
from pathlib import Path

import pytest
import yaml

from composekube.models import ConversionContext

WEB_DB_COMPOSE = {
    "version": "3",
    "services": {
        "web": {
            "image": "nginx:1.25",
            "ports": ["8080:80"],
            "depends_on": ["db"],
        },
        "db": {
            "image": "postgres:16",
            "environment": {"POSTGRES_PASSWORD": "secret"},
            "volumes": ["dbdata:/var/lib/postgresql/data"],
        },
    },
    "volumes": {"dbdata": {}},
}


@pytest.fixture
def context() -> ConversionContext:
    """Create a ConversionContext for compose input."""
    return ConversionContext(source_format="compose")


@pytest.fixture
def web_db_compose() -> dict:
    """Compose document with a published web service and a database."""
    return copy.deepcopy(WEB_DB_COMPOSE)


@pytest.fixture
def write_compose(tmp_path: Path):
    """Return a helper writing a compose document below tmp_path."""

    def _write(data: dict, name: str = "docker-compose.yml") -> Path:
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
        return path

    return _write
