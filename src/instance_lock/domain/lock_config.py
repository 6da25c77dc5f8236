from pathlib import Path
from typing import Any, Final, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

ENV_PREFIX: Final[str] = "INSTANCE_LOCK_"


class LockSettings(BaseModel):
    """
    Lock file location and timing parameters.
    Timeouts and intervals are in milliseconds.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    lock_file_name: str = Field(default="app.lock", min_length=1)
    lock_file_dir: Path = Field(default_factory=Path.cwd)
    kill_timeout: int = Field(default=5000, ge=0)
    wait_for_exit_timeout: int = Field(default=10000, ge=0)
    check_interval: int = Field(default=500, gt=0)
    max_retries: int = Field(default=3, ge=0)
    default_answer: str = "yes"

    @field_validator("default_answer", mode="before")
    @classmethod
    def yaml_boolean_answer(cls, value: Any) -> Any:
        # YAML reads a bare yes/no as a boolean
        if isinstance(value, bool):
            return "yes" if value else "no"
        return value

    @property
    def lock_file_path(self) -> Path:
        return self.lock_file_dir / self.lock_file_name

    @staticmethod
    def load(path: Path) -> "LockSettings":
        data = yaml.safe_load(path.read_text()) or {}
        return LockSettings(**data)

    @staticmethod
    def env_overrides(variables: Mapping[str, Any]) -> dict[str, Any]:
        """Pick INSTANCE_LOCK_* variables and map them onto field names."""
        overrides: dict[str, Any] = {}
        for key, value in variables.items():
            if not key.startswith(ENV_PREFIX):
                continue
            name = key[len(ENV_PREFIX):].lower()
            if name in LockSettings.model_fields:
                overrides[name] = value
        return overrides

    @staticmethod
    def resolve(
        *,
        config_file: Path | None = None,
        env: Mapping[str, Any] | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> "LockSettings":
        data: dict[str, Any] = {}
        if config_file is not None:
            data.update(LockSettings.load(config_file).model_dump(exclude_unset=True))
        if env:
            data.update(LockSettings.env_overrides(env))
        if overrides:
            data.update({k: v for k, v in overrides.items() if v is not None})
        return LockSettings(**data)
