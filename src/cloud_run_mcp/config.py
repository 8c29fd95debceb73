# Standard Library Imports
import json
from pathlib import Path
from typing import Any

# Third-Party Imports
from platformdirs import user_config_dir
from pydantic import Field
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

DEFAULT_REGION: str = "europe-west1"
DEFAULT_SERVICE_NAME: str = "app"

CFG_FILE_PATH: Path = Path(user_config_dir("cloud-run-mcp")) / "config.json"


class JsonConfigSource(PydanticBaseSettingsSource):
    """A simple settings source class that loads variables from a JSON file
    in the local platform's configuration directory.

    A missing file contributes nothing, so environment variables and
    built-in defaults still apply.
    """

    def __init__(self, settings_cls: type[BaseSettings], path: Path | None = None) -> None:
        super().__init__(settings_cls)
        self.path = path or CFG_FILE_PATH
        self._json_data: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._json_data is None:
            try:
                self._json_data = json.loads(self.path.read_bytes())
            except FileNotFoundError:
                self._json_data = {}
        return self._json_data

    def get_field_value(
        self,
        field: FieldInfo,
        field_name: str,
    ) -> tuple[Any, str, bool]:
        value = self._load().get(field_name)

        return value, field_name, False

    def __call__(self) -> dict[str, Any]:
        data: dict[str, Any] = {}

        for field_name, field in self.settings_cls.model_fields.items():
            field_value, field_key, value_is_complex = self.get_field_value(
                field,
                field_name,
            )
            if field_value is None:
                continue

            data[field_key] = self.prepare_field_value(
                field_name,
                field,
                field_value,
                value_is_complex,
            )

        return data


class Settings(BaseSettings):
    """Configuration settings for the Cloud Run MCP server.

    Values are read from the environment (``GOOGLE_CLOUD_PROJECT``,
    ``GOOGLE_CLOUD_REGION``, ``DEFAULT_SERVICE_NAME``, ...) and fall back
    to the user's ``config.json``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    google_cloud_project: str | None = Field(default=None)
    google_cloud_region: str = Field(default=DEFAULT_REGION)
    default_service_name: str = Field(default=DEFAULT_SERVICE_NAME)
    skip_iam_check: bool = Field(default=False)
    code_sandbox_url: str | None = Field(default=None)

    # Seconds to wait for the proxy to exit after SIGTERM before killing it
    proxy_stop_timeout: float = Field(default=10.0)

    operation_poll_interval: float = Field(default=2.0)
    operation_timeout: float = Field(default=600.0)

    def save_to_file(self, path: Path | None = None) -> Path:
        """Save the current settings to the configuration file."""
        path = path or CFG_FILE_PATH
        path.parent.mkdir(parents=True, exist_ok=True)

        with path.open("w") as writer:
            writer.write(self.model_dump_json(exclude_none=True, indent=2))

        return path

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
            JsonConfigSource(settings_cls),
        )


def load_settings() -> Settings:
    """Build settings from the environment and the config file."""
    return Settings()
