"""Pipeline error taxonomy; every error names the stage that failed."""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for errors that abort the globe build."""

    stage = "pipeline"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.stage} stage failed: {self.message}"


class LoadError(PipelineError):
    """Raised when the dataset cannot be fetched and no cached copy exists."""

    stage = "load"


class SchemaError(PipelineError):
    """Raised when a required source column is missing."""

    stage = "normalize"


class NotFoundError(PipelineError):
    """Raised when a repair target record cannot be located."""

    stage = "repair"


class RepairError(PipelineError):
    stage = "repair"


class ClassificationError(PipelineError):
    stage = "classify"


class RenderError(PipelineError):
    """Raised for contract violations detected before drawing."""

    stage = "render"
