"""Abstract capabilities the tool dispatcher runs tools through."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..models.tool_args import WriteMode


@dataclass
class ReadResult:
    """Outcome of reading a file."""
    success: bool
    content: Optional[str] = None
    error: Optional[str] = None


@dataclass
class WriteResult:
    """Outcome of a successful write."""
    path: str
    message: str


@dataclass
class ProcessResult:
    """Outcome of running a command. exit_code is None when the process never started."""
    exit_code: Optional[int]
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class FileSystemBackend(ABC):
    """
    File access used by read_file and write_file.

    Implementations can use different underlying systems:
    - Local disk (aiofiles)
    - In-memory fakes for tests
    """

    @abstractmethod
    async def read(self, path: str) -> ReadResult:
        """
        Read a text file.

        Never raises for missing or unreadable files; the failure is
        reported in the result instead.
        """
        pass

    @abstractmethod
    async def write(self, path: str, content: str, mode: WriteMode = "create") -> WriteResult:
        """
        Write a text file, creating missing parent directories.

        Raises:
            OSError: If the file cannot be written
        """
        pass


class ProcessBackend(ABC):
    """Command execution used by run_shell."""

    @abstractmethod
    async def run(self, command: str, cwd: str) -> ProcessResult:
        """
        Run a command through the platform shell and capture its output.

        Must not raise on a non-zero exit status. A failure to start the
        process is reported with exit_code None and the error in stderr.
        """
        pass
