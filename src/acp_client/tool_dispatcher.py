"""Execution of server-initiated tool calls."""

import logging
import os
from pathlib import Path
from typing import Any, Optional, Type, TypeVar, Union

from pydantic import ValidationError

from .backends import FileSystemBackend, LocalFileSystem, LocalProcessRunner, ProcessBackend
from .exceptions import ToolArgumentError
from .models.messages import ToolCallMessage, ToolResult, ToolResultMessage
from .models.tool_args import ReadFileArgs, RunShellArgs, ToolArgs, WriteFileArgs
from .types import ApprovalCallback, MessageSender, PreviewCallback

ArgsT = TypeVar("ArgsT", bound=ToolArgs)

USER_REJECTED = "user_rejected"
_WORKSPACE_PREFIXES = ("workspace/", "./workspace/")


def resolve_workspace_path(raw_path: str, workspace_root: Union[str, Path]) -> str:
    """
    Resolve a tool-call path against the workspace root.

    Absolute paths are returned unchanged. Relative paths lose a leading
    ``workspace/`` prefix, which older servers send, and are joined to the
    root.
    """
    if os.path.isabs(raw_path):
        return os.path.normpath(raw_path)

    relative = raw_path.replace("\\", "/") if os.sep == "\\" else raw_path
    for prefix in _WORKSPACE_PREFIXES:
        if relative.startswith(prefix):
            relative = relative[len(prefix):]
            break
    return os.path.normpath(os.path.join(str(workspace_root), relative))


def _describe_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        field = ".".join(str(part) for part in item["loc"]) or "args"
        parts.append(f"{field}: {item['msg']}")
    return "; ".join(parts)


class ToolDispatcher:
    """
    Validates, approves and executes tool calls, then reports the result.

    Every call to ``handle_tool_call`` sends exactly one ``tool_result``
    carrying the request id, whatever happens while handling it.

    Tools:
    - write_file: approval required, preview of the change shown first
    - read_file: no approval
    - run_shell: approval required
    """

    def __init__(
        self,
        sender: MessageSender,
        approve: ApprovalCallback,
        workspace_root: Union[str, Path],
        filesystem: Optional[FileSystemBackend] = None,
        process_runner: Optional[ProcessBackend] = None,
        preview: Optional[PreviewCallback] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.sender = sender
        self.approve = approve
        self.workspace_root = Path(workspace_root).resolve()
        self.filesystem = filesystem or LocalFileSystem()
        self.process_runner = process_runner or LocalProcessRunner()
        self.preview = preview
        self.logger = logger or logging.getLogger(__name__)

    def resolve_path(self, raw_path: str) -> str:
        return resolve_workspace_path(raw_path, self.workspace_root)

    async def handle_tool_call(self, request: ToolCallMessage) -> ToolResultMessage:
        """
        Handle one tool call and send its result.

        Args:
            request: Incoming tool_call message

        Returns:
            The tool_result message that was sent
        """
        self.logger.info(f"Tool call {request.id}: {request.tool or '<missing>'}")

        try:
            result = await self._run_tool(request)
        except ToolArgumentError as e:
            self.logger.warning(f"Tool call {request.id} rejected: {e.message}")
            result = ToolResult(success=False, error=e.message)
        except Exception as e:
            self.logger.error(f"Tool call {request.id} failed: {e}", exc_info=True)
            result = ToolResult(success=False, error=str(e) or type(e).__name__)

        if result.error == USER_REJECTED:
            self.logger.info(f"Tool call {request.id} declined by user")

        message = ToolResultMessage.from_result(request.id, result)
        await self.sender.send(message)
        return message

    async def _run_tool(self, request: ToolCallMessage) -> ToolResult:
        if request.tool == "write_file":
            return await self._write_file(self._validate(request, WriteFileArgs))
        if request.tool == "read_file":
            return await self._read_file(self._validate(request, ReadFileArgs))
        if request.tool == "run_shell":
            return await self._run_shell(self._validate(request, RunShellArgs))
        return ToolResult(success=False, error=f"Unknown tool: {request.tool}")

    def _validate(self, request: ToolCallMessage, model: Type[ArgsT]) -> ArgsT:
        args: Any = request.args
        if not isinstance(args, dict):
            raise ToolArgumentError(request.tool, "args must be an object")
        try:
            return model.model_validate(args)
        except ValidationError as e:
            raise ToolArgumentError(request.tool, _describe_validation_error(e)) from e

    async def _write_file(self, args: WriteFileArgs) -> ToolResult:
        path = self.resolve_path(args.path)

        existing = await self.filesystem.read(path)
        old_content = existing.content if existing.success else None
        if self.preview:
            self.preview(path, old_content, args.content)

        if not await self.approve(f"Approve writing {path}?", False):
            return ToolResult(success=False, error=USER_REJECTED)

        try:
            written = await self.filesystem.write(path, args.content, args.mode)
        except (OSError, ValueError) as e:
            self.logger.warning(f"Write to {path} failed: {e}")
            return ToolResult(success=False, stderr=str(e), error=str(e))
        return ToolResult(success=True, stdout=written.message)

    async def _read_file(self, args: ReadFileArgs) -> ToolResult:
        path = self.resolve_path(args.path)
        read = await self.filesystem.read(path)
        if read.success:
            return ToolResult(success=True, stdout=read.content or "", stderr="")

        error = read.error or f"Could not read {path}"
        return ToolResult(success=False, stdout="", stderr=error, error=error)

    async def _run_shell(self, args: RunShellArgs) -> ToolResult:
        cwd = self.resolve_path(args.cwd) if args.cwd else str(self.workspace_root)
        self.logger.info(f"Model requests running shell: {args.cmd} (cwd: {cwd})")

        if not await self.approve(f"Approve running shell command: {args.cmd}?", False):
            return ToolResult(success=False, error=USER_REJECTED)

        process = await self.process_runner.run(args.cmd, cwd)
        return ToolResult(
            success=process.success,
            stdout=process.stdout,
            stderr=process.stderr,
            code=process.exit_code,
        )
