"""
Pydantic model for the application configuration file.
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, field_validator

SESSION_KEYS = ("device_id", "access_token", "refresh_token", "user_id", "user_key")


class AppConfig(BaseModel):
    """A validated view of config.ini."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    # Session
    device_id: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    user_id: str | None = None
    user_key: str | None = None

    # Downloads
    output_dir: Path | None = None

    @field_validator(*SESSION_KEYS, mode="before")
    @classmethod
    def empty_as_absent(cls, v: str | None) -> str | None:
        """An empty INI value means the field is not set."""
        if v is None or not str(v).strip():
            return None
        return v

    @field_validator("output_dir", mode="before")
    @classmethod
    def validate_output_dir(cls, v: str | Path | None) -> Path | None:
        if v is None or not str(v).strip():
            return None
        return Path(str(v).strip()).expanduser()

    def session(self) -> dict[str, str | None]:
        return {key: getattr(self, key) for key in SESSION_KEYS}
