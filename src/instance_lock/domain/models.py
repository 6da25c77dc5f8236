import re
from typing import Final

from pydantic import BaseModel, ConfigDict, PositiveInt

AFFIRMATIVE_ANSWER: Final[str] = "yes"

_PID_PATTERN: Final[re.Pattern[str]] = re.compile(r"\d+")


class LockError(RuntimeError):
    pass


class InvalidLockRecordError(LockError, ValueError):
    pass


class LockRecord(BaseModel):
    model_config = ConfigDict(frozen=True)
    owner_pid: PositiveInt

    @staticmethod
    def parse(content: str) -> "LockRecord":
        text = content.strip()
        if not _PID_PATTERN.fullmatch(text) or int(text) <= 0:
            raise InvalidLockRecordError(f"Invalid PID in lock record: {text!r}")
        return LockRecord(owner_pid=int(text))

    def encode(self) -> str:
        return str(self.owner_pid)
