from dataclasses import dataclass, field
from pathlib import Path
from dotenv import load_dotenv
from returns.result import safe
import os


@dataclass(frozen=True)
class Env:
    """
    Environment after loading a .env file.

    Values stay as text; the settings model owns type coercion, so a
    directory named "2024.1" or an answer of "true" reaches it unchanged.
    """

    vars: dict[str, str] = field(default_factory=dict)

    @safe
    def load(self, path_to_dotenv: str | Path = ".env") -> "Env":
        load_dotenv(dotenv_path=path_to_dotenv)
        loaded_vars = {
            k: v
            for k, v in os.environ.items()
            if v
        }
        return Env(vars=loaded_vars)

    def with_prefix(self, prefix: str) -> dict[str, str]:
        return {k: v for k, v in self.vars.items() if k.startswith(prefix)}
