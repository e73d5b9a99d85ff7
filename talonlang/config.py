import os
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class PredefinedPolicy(str, Enum):
    """What the predefined-variable loader does when a statement fails."""
    FAIL_CLOSED = "fail_closed"
    SKIP = "skip"


class RuntimeConfig(BaseModel):
    predefined_policy: PredefinedPolicy = PredefinedPolicy.FAIL_CLOSED
    log_level: str = "INFO"
    parse_cache_size: int = Field(default=256, ge=0)
    require_chain_fields: bool = False
    state_dir: str = "./.talon_state"

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_level(cls, v):
        return str(v).upper()

    @field_validator("predefined_policy", mode="before")
    @classmethod
    def coerce_policy(cls, v):
        if isinstance(v, str):
            return PredefinedPolicy(v.lower())
        return v

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        """Build a config from TALON_* environment variables, falling back to defaults."""
        data = {}
        env = {
            "predefined_policy": "TALON_PREDEFINED_POLICY",
            "log_level": "TALON_LOG_LEVEL",
            "parse_cache_size": "TALON_PARSE_CACHE_SIZE",
            "require_chain_fields": "TALON_REQUIRE_CHAIN_FIELDS",
            "state_dir": "TALON_STATE_DIR",
        }
        for field, var in env.items():
            raw = os.getenv(var)
            if raw is not None and raw != "":
                data[field] = raw
        return cls.model_validate(data)
