"""Pydantic models for validating application bundle (.dab) files."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BundlePort(BaseModel):
    """Port exposed by a bundle service."""

    model_config = ConfigDict(populate_by_name=True)

    protocol: Literal["tcp", "udp"] = Field(
        "tcp", alias="Protocol", description="Transport protocol"
    )
    port: int = Field(alias="Port", ge=1, le=65535, description="Container port")

    @field_validator("protocol", mode="before")
    @classmethod
    def lowercase_protocol(cls, value: Any) -> Any:
        """Accept protocol names in any case."""
        return value.lower() if isinstance(value, str) else value


class BundleService(BaseModel):
    """Service definition in a bundle.

    Unknown keys are kept so the loader can report them as unsupported.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    image: str = Field(
        alias="Image", min_length=1, description="Image reference, usually a digest"
    )
    command: list[str] | None = Field(None, alias="Command")
    args: list[str] | None = Field(None, alias="Args")
    env: list[str] | None = Field(None, alias="Env", description="KEY=VALUE entries")
    labels: dict[str, str] | None = Field(None, alias="Labels")
    ports: list[BundlePort] | None = Field(None, alias="Ports")
    working_dir: str | None = Field(None, alias="WorkingDir")
    user: str | None = Field(None, alias="User")
    networks: list[str] | None = Field(None, alias="Networks")


class Bundle(BaseModel):
    """Distributed application bundle."""

    model_config = ConfigDict(populate_by_name=True)

    version: str = Field(alias="Version", min_length=1, description="Bundle version")
    services: dict[str, BundleService] = Field(
        alias="Services", min_length=1, description="Services keyed by name"
    )
