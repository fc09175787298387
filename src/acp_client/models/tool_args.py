"""Argument models for the tools a server may call."""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr

WriteMode = Literal["create", "edit", "patch"]


class ToolArgs(BaseModel):
    """Base for tool argument models; unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore")


class WriteFileArgs(ToolArgs):
    path: StrictStr = Field(..., description="Target file, absolute or workspace-relative")
    content: StrictStr = Field(..., description="Full file content to write")
    mode: WriteMode = Field("create", description="How the write is described to the user")


class ReadFileArgs(ToolArgs):
    path: StrictStr = Field(..., description="File to read, absolute or workspace-relative")


class RunShellArgs(ToolArgs):
    cmd: StrictStr = Field(..., description="Command line passed to the platform shell")
    cwd: Optional[StrictStr] = Field(None, description="Working directory, defaults to the workspace")
