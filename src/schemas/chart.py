"""Pydantic models for validating generated Chart.yaml files."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

SEMVER_PATTERN = r"^\d+\.\d+\.\d+(-[0-9A-Za-z.-]+)?(\+[0-9A-Za-z.-]+)?$"


class ChartMetadata(BaseModel):
    """Chart metadata as written to Chart.yaml.

    Chart names follow the same rules as platform object names so the
    chart directory name can be used as a release name.
    """

    model_config = ConfigDict(populate_by_name=True)

    api_version: Literal["v2"] = Field("v2", alias="apiVersion")
    name: str = Field(
        pattern=r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$",
        max_length=63,
        description="Chart name",
    )
    description: str = Field(min_length=1, description="One-line chart description")
    type: Literal["application", "library"] = Field("application")
    version: str = Field(pattern=SEMVER_PATTERN, description="Chart version (SemVer)")
    app_version: str | None = Field(
        None, alias="appVersion", description="Version of the packaged application"
    )
    keywords: list[str] = Field(default_factory=list)
