"""Configuration for apigen.

Values come from four layers, lowest first: built-in defaults, an
``apigen.config.json`` file (searched upward from the working directory),
``APIGEN_*`` environment variables and explicit keyword arguments (the CLI
flags). Nested settings use ``__`` in environment names, for example
``APIGEN_MOCK_DATA__SEED=42``.
"""

import json
import re
from pathlib import Path
from typing import Any

import structlog
from pydantic import AnyHttpUrl, BaseModel, Field, TypeAdapter, ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from .extractor.base import AuthType

CONFIG_FILE_NAME = "apigen.config.json"

logger = structlog.get_logger(__name__)

_URL = TypeAdapter(AnyHttpUrl)


class AuthSettings(BaseModel):
    type: str = Field(default="bearer", description="bearer, apiKey, basic, oauth2 or none")
    token_placeholder: str = Field(default="{{token}}", description="Placeholder used for the token value")
    key_name: str = Field(default="X-API-Key", description="API key header or query parameter name")
    key_location: str = Field(default="header", description="Where the API key goes: header or query")


class GeneratorSettings(BaseModel):
    postman: bool = Field(default=True, description="Write a Postman collection")
    curl: bool = Field(default=True, description="Write cURL scripts")
    readme: bool = Field(default=True, description="Write a Markdown API reference")

    def enabled(self) -> list[str]:
        return [name for name in ("postman", "curl", "readme") if getattr(self, name)]


class MockDataSettings(BaseModel):
    enabled: bool = Field(default=True, description="Fill examples with realistic sample values")
    locale: str = Field(default="en", description="Locale of the sample values")
    seed: int | None = Field(default=None, description="Seed for reproducible sample values")


class ApigenConfig(BaseSettings):
    """Resolved apigen settings."""

    source: str = Field(default="auto", description="Project directory, spec file/URL, or 'auto' for the working dir")
    output: str = Field(default="./apigen-output", description="Directory generated files are written to")
    base_url: str = Field(default="http://localhost:3000", description="Base URL of the API")
    framework: str = Field(default="auto", description="Framework override, or 'auto' to detect")
    verbose: bool = Field(default=False, description="Debug logging")
    auth: AuthSettings = Field(default_factory=AuthSettings)
    generators: GeneratorSettings = Field(default_factory=GeneratorSettings)
    mock_data: MockDataSettings = Field(default_factory=MockDataSettings)
    config_file: Path | None = Field(default=None, exclude=True, description="Explicit config file; skips the upward search")

    model_config = SettingsConfigDict(
        env_prefix="APIGEN_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        explicit = getattr(init_settings, "init_kwargs", {}).get("config_file")
        return init_settings, env_settings, ConfigFileSource(settings_cls, explicit)

    def source_path(self) -> str:
        """The source to extract from; 'auto' means the working directory."""
        return str(Path.cwd()) if self.source == "auto" else self.source


class ConfigFileSource(PydanticBaseSettingsSource):
    """Settings read from apigen.config.json, with camelCase keys accepted."""

    def __init__(self, settings_cls: type[BaseSettings], path: str | Path | None = None):
        super().__init__(settings_cls)
        self.path = Path(path) if path else find_config_file()

    def get_field_value(self, field, field_name: str) -> tuple[Any, str, bool]:
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        if self.path is None:
            logger.debug("config_file_not_found")
            return {}
        data = read_config_file(self.path)
        return {k: v for k, v in data.items() if k in self.settings_cls.model_fields}


def find_config_file(start: Path | None = None) -> Path | None:
    """Nearest apigen.config.json in ``start`` or one of its parents."""
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


def read_config_file(path: Path) -> dict[str, Any]:
    """Parse a config file into snake_case keys.

    A missing, unreadable or malformed file is ignored with a warning.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("config_file_unreadable", path=str(path), error=str(e))
        return {}
    except json.JSONDecodeError as e:
        logger.warning("config_file_invalid_json", path=str(path), error=str(e))
        return {}
    if not isinstance(data, dict):
        logger.warning("config_file_not_an_object", path=str(path))
        return {}
    logger.debug("config_file_loaded", path=str(path))
    return _snake_keys(data)


def _snake_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {_snake(k): _snake_keys(v) for k, v in value.items()}
    return value


def _snake(key: str) -> str:
    return re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", key).lower()


def load_config(config_file: str | Path | None = None, **overrides: Any) -> ApigenConfig:
    """Resolve the configuration; ``overrides`` win over every other layer.

    Overrides set to None are ignored so CLI options that were not given
    fall through to the file and environment.
    """
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if config_file is not None:
        overrides["config_file"] = Path(config_file)
    return ApigenConfig(**overrides)


def validate_config(config: ApigenConfig) -> list[str]:
    """Every problem with ``config``; empty when it is usable."""
    problems = []
    if not config.source:
        problems.append("source is required")
    if not config.output:
        problems.append("output is required")
    if not config.base_url:
        problems.append("baseUrl is required")
    elif "{{" not in config.base_url:
        try:
            _URL.validate_python(config.base_url)
        except ValidationError:
            problems.append(f"baseUrl must be a valid http(s) URL: {config.base_url}")
    if not config.generators.enabled():
        problems.append("at least one generator (postman, curl, readme) must be enabled")
    if config.auth.type not in {t.value for t in AuthType}:
        problems.append(f"invalid auth type: {config.auth.type} (expected one of {', '.join(t.value for t in AuthType)})")
    if config.auth.key_location not in ("header", "query"):
        problems.append(f"invalid auth keyLocation: {config.auth.key_location} (expected header or query)")
    return problems


EXAMPLE_CONFIG = {
    "source": "auto",
    "output": "./apigen-output",
    "baseUrl": "http://localhost:3000",
    "framework": "auto",
    "auth": {"type": "bearer", "tokenPlaceholder": "{{token}}"},
    "generators": {"postman": True, "curl": True, "readme": True},
    "mockData": {"enabled": True, "locale": "en", "seed": 12345},
}


def write_example_config(path: str | Path = CONFIG_FILE_NAME, overwrite: bool = False) -> Path:
    """Write a starter apigen.config.json. Refuses to replace an existing file."""
    path = Path(path)
    if path.exists() and not overwrite:
        raise FileExistsError(f"{path} already exists")
    path.write_text(json.dumps(EXAMPLE_CONFIG, indent=2) + "\n", encoding="utf-8")
    return path
