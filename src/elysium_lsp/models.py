"""Pydantic models for validating compile_commands.json records."""

from pydantic import BaseModel, Field, field_validator


class CompileCommandEntry(BaseModel):
    """One record of a JSON compilation database."""

    file: str = Field(..., min_length=1, description="Source file, absolute or relative to directory")
    directory: str | None = Field(None, description="Working directory of the compile")
    arguments: list[str] | None = Field(None, description="Compiler invocation as an argv list")
    command: str | None = Field(None, description="Compiler invocation as a shell string")
    output: str | None = Field(None, description="Output file of the compile")

    @field_validator("file", "directory")
    @classmethod
    def validate_no_null_bytes(cls, v: str | None) -> str | None:
        if v is not None and "\x00" in v:
            raise ValueError("Null bytes in path")
        return v

    @field_validator("arguments")
    @classmethod
    def validate_arguments(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return v
        if any("\x00" in arg for arg in v):
            raise ValueError("Null bytes in arguments")
        return v
