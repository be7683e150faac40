"""
Broker configuration.

All settings come from the environment (main.py loads a local `.env` first).
Values are parsed and validated once at startup; anything invalid raises
ConfigError so the process dies before it binds a port.

  BROKER_HOST=localhost
  BROKER_PORT=8931
  BROKER_BROWSER=chromium        # chromium | chrome | msedge | firefox | webkit
  BROKER_CONTEXT_MODE=isolated   # isolated | shared
"""

import logging
import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from automation.config import AutomationConfig, BrowserEngine, ContextMode
from errors import ConfigError

ENV_PREFIX = "BROKER_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class Settings(BaseModel):
    host: str = "localhost"
    port: int = Field(default=8931, ge=1, le=65535)
    browser: BrowserEngine = BrowserEngine.CHROMIUM
    headless: bool = True
    sandbox: bool = False
    user_data_dir: Optional[str] = None
    context_mode: ContextMode = ContextMode.ISOLATED
    idle_timeout: float = Field(default=900.0, gt=0)     # seconds without activity before a reap
    reap_interval: float = Field(default=30.0, gt=0)
    keepalive_interval: float = Field(default=15.0, gt=0)
    launch_timeout: float = Field(default=30.0, gt=0)
    cors_origin: str = "*"
    log_level: str = "INFO"

    @field_validator("host", "cors_origin")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @field_validator("headless", "sandbox", mode="before")
    @classmethod
    def _parse_flag(cls, value):
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
            raise ValueError(f"expected a boolean flag, got {value!r}")
        return value

    @field_validator("browser", "context_mode", mode="before")
    @classmethod
    def _lower(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {value!r}")
        return level

    @model_validator(mode="after")
    def _profile_needs_shared_context(self):
        if self.user_data_dir and self.context_mode is not ContextMode.SHARED:
            raise ValueError(
                "a persistent profile (BROKER_USER_DATA_DIR) can only back one "
                "context; set BROKER_CONTEXT_MODE=shared to use it"
            )
        return self

    def automation(self) -> AutomationConfig:
        return AutomationConfig(
            browser=self.browser,
            headless=self.headless,
            sandbox=self.sandbox,
            user_data_dir=self.user_data_dir,
            context_mode=self.context_mode,
            launch_timeout=self.launch_timeout,
        )


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from BROKER_* variables.

    Reads os.environ unless `environ` is given (tests hand in a plain dict).
    Unset or empty variables fall back to the defaults above.
    """
    if environ is None:
        environ = os.environ

    raw = {}
    for name in Settings.model_fields:
        value = environ.get(ENV_PREFIX + name.upper())
        if value is not None and value != "":
            raw[name] = value

    try:
        return Settings(**raw)
    except ValidationError as exc:
        problems = "; ".join(
            f"{ENV_PREFIX}{'.'.join(str(p) for p in err['loc']).upper() or 'CONFIG'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigError(f"invalid configuration: {problems}") from exc
