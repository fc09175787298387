"""Local disk and subprocess implementations of the tool capabilities."""

import asyncio
import logging
import os
from pathlib import Path

import aiofiles
import aiofiles.os

from ..models.tool_args import WriteMode
from .base import FileSystemBackend, ProcessBackend, ProcessResult, ReadResult, WriteResult

logger = logging.getLogger(__name__)

_MODE_VERBS = {"create": "created", "edit": "updated", "patch": "patched"}


class LocalFileSystem(FileSystemBackend):
    """
    Async file access on the local disk.

    Features:
    - Non-blocking reads and writes through aiofiles
    - Parent directories created on write
    """

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    async def read(self, path: str) -> ReadResult:
        try:
            async with aiofiles.open(path, "r", encoding=self.encoding) as f:
                content = await f.read()
        except (OSError, ValueError) as e:
            # ValueError covers undecodable content and NUL bytes in the path
            logger.debug(f"Read failed for {path}: {e}")
            return ReadResult(success=False, error=str(e))
        return ReadResult(success=True, content=content)

    async def write(self, path: str, content: str, mode: WriteMode = "create") -> WriteResult:
        normalized = os.path.normpath(path)
        directory = os.path.dirname(normalized)
        if directory:
            await aiofiles.os.makedirs(directory, exist_ok=True)

        async with aiofiles.open(normalized, "w", encoding=self.encoding) as f:
            await f.write(content)

        logger.debug(f"Wrote {len(content)} chars to {normalized}")
        return WriteResult(
            path=normalized,
            message=f"File {normalized} {_MODE_VERBS.get(mode, 'written')} successfully",
        )


class LocalProcessRunner(ProcessBackend):
    """Runs commands with the platform shell (/bin/sh or cmd.exe)."""

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    async def run(self, command: str, cwd: str) -> ProcessResult:
        if not Path(cwd).is_dir():
            return ProcessResult(
                exit_code=None,
                stdout="",
                stderr=f"Working directory does not exist: {cwd}",
            )

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                cwd=cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (OSError, ValueError) as e:
            # ValueError: the command contains a NUL byte
            logger.warning(f"Failed to start command {command!r}: {e}")
            return ProcessResult(exit_code=None, stdout="", stderr=str(e))

        stdout, stderr = await process.communicate()
        logger.debug(f"Command {command!r} exited with {process.returncode}")
        return ProcessResult(
            exit_code=process.returncode,
            stdout=stdout.decode(self.encoding, errors="replace"),
            stderr=stderr.decode(self.encoding, errors="replace"),
        )
