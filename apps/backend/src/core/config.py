"""Application settings, CORS and allow-list configuration."""

import json
import os
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_str_list(v: object, field_name: str) -> list[str]:
    """Accept a list, CSV string, or JSON array string."""
    if isinstance(v, list):
        return [str(i).strip() for i in v if str(i).strip()]
    if isinstance(v, str):
        s = v.strip()
        if not s:
            return []
        if s.startswith("["):
            try:
                parsed = json.loads(s)
            except json.JSONDecodeError as e:
                raise ValueError(
                    f"{field_name} must be a CSV list or JSON array string"
                ) from e
            if not isinstance(parsed, list):
                raise ValueError(f"{field_name} JSON must be a list")
            return [str(i).strip() for i in parsed if str(i).strip()]
        # CSV fallback
        return [i.strip() for i in s.split(",") if i.strip()]
    raise ValueError(f"Invalid {field_name} type; expected str or list[str]")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env"), env_file_encoding="utf-8")

    # App
    APP_NAME: str = "JobRelay"
    ENVIRONMENT: str = "development"  # development | production | test

    # CORS
    # Accept list or CSV/JSON string from env; normalized to list[str] by validators
    CORS_ORIGINS: list[str] | str = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    ALLOW_CREDENTIALS: bool = True

    # Hostnames accepted both for job submission and for the image proxy
    ALLOWED_DOMAINS: list[str] | str = ["media.licdn.com"]

    # Image proxy upstream fetch
    PROXY_TIMEOUT_SECONDS: float = 10.0
    PROXY_USER_AGENT: str = "JobRelay-ImageProxy/1.0"
    PROXY_MAX_BYTES: int = 5 * 1024 * 1024

    # Server-sent events keep-alive interval for the session event stream
    SSE_HEARTBEAT_SECONDS: float = 15.0

    # Sessions unseen for this long, with no open event stream, are closed
    SESSION_IDLE_TTL_SECONDS: float = 1800.0
    SESSION_SWEEP_INTERVAL_SECONDS: float = 60.0

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: object) -> list[str]:
        """Allow list, CSV string, or JSON array string for CORS origins."""
        return _parse_str_list(v, "CORS_ORIGINS")

    @field_validator("ALLOWED_DOMAINS", mode="before")
    @classmethod
    def assemble_allowed_domains(cls, v: object) -> list[str]:
        """Normalize the allow-list to lower-case hostnames."""
        return [d.lower() for d in _parse_str_list(v, "ALLOWED_DOMAINS")]

    @model_validator(mode="after")
    def _validate_cors_credentials(self) -> "Settings":
        """Ensure wildcard origins are not used when credentials are allowed."""
        # Normalize in case the union allows a stray string at runtime
        if isinstance(self.CORS_ORIGINS, str):
            self.CORS_ORIGINS = self.assemble_cors_origins(self.CORS_ORIGINS)
        if isinstance(self.ALLOWED_DOMAINS, str):
            self.ALLOWED_DOMAINS = self.assemble_allowed_domains(self.ALLOWED_DOMAINS)
        if self.ALLOW_CREDENTIALS and any(
            o.strip() == "*" for o in (self.CORS_ORIGINS or [])
        ):
            raise ValueError(
                "CORS configuration error: ALLOW_CREDENTIALS=True but "
                "CORS_ORIGINS contains '*'. Use explicit origins when credentials "
                "are allowed."
            )
        if not self.ALLOWED_DOMAINS:
            raise ValueError("ALLOWED_DOMAINS must contain at least one hostname")
        return self

    @property
    def allowed_domains(self) -> frozenset[str]:
        return frozenset(self.ALLOWED_DOMAINS)


@lru_cache
def get_settings() -> Settings:
    env = os.getenv("ENVIRONMENT", "development").lower()
    if env not in {"development", "production", "test"}:
        raise ValueError("ENVIRONMENT must be 'development', 'production', or 'test'")

    if env == "production":
        env_file = ".env.prod"
    elif env == "development":
        env_file = ".env.dev"
    else:
        # test environment - no env file needed, use defaults
        env_file = ""

    # The Settings initializer accepts a runtime-only `_env_file` kwarg used by
    # pydantic-settings; mypy's stub doesn't allow this call argument.
    return Settings(_env_file=env_file or None)  # type: ignore[call-arg]
