import warnings
from typing import Annotated, Any, Literal

from pydantic import (
    AnyUrl,
    BeforeValidator,
    HttpUrl,
    computed_field,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Use top level .env file (one level above ./backend/)
        env_file="../.env",
        env_ignore_empty=True,
        extra="ignore",
    )
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "mysql-codemode"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    SENTRY_DSN: HttpUrl | None = None

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS]

    # Target MySQL server for the core tool group
    MYSQL_HOST: str = "localhost"
    MYSQL_PORT: int = 3306
    MYSQL_USER: str = "root"
    MYSQL_PASSWORD: str = ""
    MYSQL_DATABASE: str = ""

    EXTERNAL_DB_POOL_SIZE: int = 5
    EXTERNAL_DB_POOL_MAX_AGE_SEC: int = 600
    EXTERNAL_DB_CONNECT_TIMEOUT: int = 10
    # Per-statement timeout (seconds) applied via max_execution_time; None = off
    EXTERNAL_DB_STATEMENT_TIMEOUT: int | None = None

    # Redis backs the shared rate limiter; in-memory fallback when disabled
    CACHE_ENABLED: bool = False
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def redis_url(self) -> str:
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    FLOW_CONTROL_RATE_LIMIT_ENABLED: bool = True

    # Code mode
    CODEMODE_TIMEOUT_MS: int = 30_000
    CODEMODE_MAX_TIMEOUT_MS: int = 30_000
    CODEMODE_MAX_CONCURRENT: int = 4
    CODEMODE_START_METHOD: Literal["spawn", "forkserver", "fork"] = "spawn"
    CODEMODE_MAX_CODE_LENGTH: int = 50_000
    CODEMODE_MAX_RESULT_SIZE: int = 10 * 1024 * 1024
    CODEMODE_RATE_LIMIT_PER_MINUTE: int = 60
    CODEMODE_TOOL_PREFIX: str = "mysql_"
    CODEMODE_ROOT_NAME: str = "mysql"
    # Comma-separated registry groups never exposed to scripts
    CODEMODE_EXCLUDED_GROUPS: str = "codemode"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def codemode_excluded_groups(self) -> frozenset[str]:
        return frozenset(
            g.strip() for g in self.CODEMODE_EXCLUDED_GROUPS.split(",") if g.strip()
        )

    def _check_limit(self, var_name: str, value: int, minimum: int) -> None:
        if value < minimum:
            message = f"{var_name} must be >= {minimum}, got {value}."
            if self.ENVIRONMENT == "local":
                warnings.warn(message, stacklevel=1)
            else:
                raise ValueError(message)

    @model_validator(mode="after")
    def _enforce_codemode_limits(self) -> Self:
        self._check_limit("CODEMODE_TIMEOUT_MS", self.CODEMODE_TIMEOUT_MS, 1)
        self._check_limit("CODEMODE_MAX_CONCURRENT", self.CODEMODE_MAX_CONCURRENT, 1)
        self._check_limit("CODEMODE_MAX_CODE_LENGTH", self.CODEMODE_MAX_CODE_LENGTH, 1)
        return self


settings = Settings()  # type: ignore
