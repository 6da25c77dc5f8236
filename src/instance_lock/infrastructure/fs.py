# src/instance_lock/infrastructure/fs.py
import os
import tempfile
from pathlib import Path
from dataclasses import dataclass
from typing import Protocol


class ILockStore(Protocol):
    """Small text file holding the lock record."""

    @property
    def path(self) -> Path:
        ...

    def read(self) -> str:
        """Raises FileNotFoundError when no record exists."""
        ...

    def create(self, content: str) -> None:
        """Write a new record, raising FileExistsError if one exists."""
        ...

    def replace(self, content: str) -> None:
        """Overwrite the record in a single rename."""
        ...

    def delete(self) -> None:
        ...


@dataclass(frozen=True)
class FileLockStore:
    """Concrete lock store on the local filesystem."""

    lock_file: Path

    @property
    def path(self) -> Path:
        return self.lock_file

    def read(self) -> str:
        return self.lock_file.read_text(encoding="utf-8")

    def create(self, content: str) -> None:
        # "x" fails with FileExistsError instead of truncating
        with open(self.lock_file, "x", encoding="utf-8") as f:
            f.write(content)

    def replace(self, content: str) -> None:
        fd, tmp_name = tempfile.mkstemp(
            dir=self.lock_file.parent, prefix=f".{self.lock_file.name}."
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_name, self.lock_file)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self) -> None:
        self.lock_file.unlink()
