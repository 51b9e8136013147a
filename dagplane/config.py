"""
Configuration management for dagplane.

Every process parameter is read from its environment variable (or a ``.env``
file) and can be overridden by the matching ``--kebab-case`` command line
flag. ``validate_config`` must pass before the service accepts traffic.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .logs import parse_level

MIN_APP_KEY_LENGTH = 32

# Literal value used to pass an explicitly empty parameter
EMPTY_VALUE = "-"

LOG_FORMATS = ("json", "console")
INFERENCE_POLICIES = ("best_effort", "strict")


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Server
    server_port: str = Field(default="9100", description="port to listen on")
    server_host: str = Field(default="0.0.0.0", description="the network interface to listen on")

    # Logging
    log_level: str = Field(default="DEBUG", description="log level - DEBUG, INFO, WARNING, ERROR, FATAL")
    log_format: str = Field(default="json", description="log renderer - json or console")

    # Database
    db_host: str = Field(default="", description="database host, optionally host:port")
    db_user: str = Field(default="", description="database user")
    db_password: str = Field(default=EMPTY_VALUE, description="database password")
    db_name: str = Field(default="", description="database name")
    db_ssl_mode: str = Field(default="disable", description="database sslmode (require, disable)")
    max_idle_db_conn: str = Field(default="5", description="maximum allowed idle DB connections")
    max_open_db_conn: str = Field(default="10", description="maximum allowed open DB connections")
    database_url: str = Field(
        default="",
        description="full SQLAlchemy database URL; replaces the other database parameters",
    )

    # Service
    ingress_host: str = Field(
        default="", description="service ingress host for jobs to communicate back to dagplane"
    )
    app_key: str = Field(default="", description="random 32 character key used for encrypting secrets")

    # Pipeline
    bootstrap_timeout_seconds: float = Field(default=10)
    deploy_timeout_seconds: float = Field(default=300)
    storage_call_timeout_seconds: float = Field(default=30)
    deploy_concurrency: int = Field(default=8)
    inferred_dependency_policy: str = Field(default="best_effort")
    shutdown_wait_seconds: float = Field(default=30)


@dataclass(frozen=True)
class Parameter:
    """A required process parameter."""

    field: str
    required_without_database_url: bool = False

    @property
    def flag(self) -> str:
        return self.field.replace("_", "-")

    @property
    def env(self) -> str:
        return self.field.upper()


PARAMETERS = (
    Parameter("server_port"),
    Parameter("server_host"),
    Parameter("log_level"),
    Parameter("db_host", required_without_database_url=True),
    Parameter("db_user", required_without_database_url=True),
    Parameter("db_password", required_without_database_url=True),
    Parameter("db_name", required_without_database_url=True),
    Parameter("db_ssl_mode", required_without_database_url=True),
    Parameter("max_idle_db_conn"),
    Parameter("max_open_db_conn"),
    Parameter("ingress_host"),
    Parameter("app_key"),
)

INTEGER_PARAMETERS = ("server_port", "max_idle_db_conn", "max_open_db_conn")


def validate_config(settings: Settings) -> Settings:
    """Check every required parameter and return the normalized settings.

    All problems are reported together. After the presence check a literal
    ``-`` is replaced by the empty string.

    Raises:
        ConfigurationError: If any parameter is missing or invalid
    """
    problems: List[str] = []
    values = settings.model_dump()
    use_database_url = bool(settings.database_url.strip())

    for parameter in PARAMETERS:
        if parameter.required_without_database_url and use_database_url:
            continue
        value = values[parameter.field]
        if not str(value).strip():
            problems.append(
                f"missing required parameter: --{parameter.flag} "
                f"(can also be set using {parameter.env} environment variable)"
            )

    for name, value in values.items():
        if value == EMPTY_VALUE:
            values[name] = ""

    for name in INTEGER_PARAMETERS:
        value = values[name]
        if str(value).strip() and not str(value).strip().isdigit():
            problems.append(f"invalid value for --{name.replace('_', '-')}: {value!r} is not an integer")

    app_key = values["app_key"]
    if app_key and len(app_key) < MIN_APP_KEY_LENGTH:
        problems.append(f"--app-key must be at least {MIN_APP_KEY_LENGTH} characters")

    if values["log_level"]:
        try:
            parse_level(values["log_level"])
        except ValueError as e:
            problems.append(f"invalid value for --log-level: {e}")
    if values["log_format"] not in LOG_FORMATS:
        problems.append(f"--log-format must be one of {', '.join(LOG_FORMATS)}")
    if values["inferred_dependency_policy"] not in INFERENCE_POLICIES:
        problems.append(
            f"--inferred-dependency-policy must be one of {', '.join(INFERENCE_POLICIES)}"
        )
    if values["deploy_concurrency"] < 1:
        problems.append("--deploy-concurrency must be at least 1")

    if problems:
        raise ConfigurationError(problems)
    return Settings.model_construct(**values)


def load_settings(**overrides: Optional[str]) -> Settings:
    """Build settings from the environment, with explicit overrides applied.

    Raises:
        ConfigurationError: If a value cannot be parsed
    """
    try:
        return Settings(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        problems = []
        for error in e.errors():
            flag = "-".join(str(part) for part in error["loc"]).replace("_", "-")
            problems.append(f"invalid value for --{flag}: {error['msg']}")
        raise ConfigurationError(problems) from e


@lru_cache
def get_settings() -> Settings:
    """Get application settings."""
    return load_settings()
