"""Error types raised by reelpipe."""

from typing import List, Optional


class ReelpipeError(Exception):
    """Base class for all reelpipe errors."""


class ConfigurationError(ReelpipeError):
    """An option block or config value could not be decoded."""

    def __init__(self, message: str, field: Optional[str] = None, value=None):
        super().__init__(message)
        self.field = field
        self.value = value


class CollaboratorError(ReelpipeError):
    """An external tool exited with an error.

    The captured process output is kept on the exception so failures can be
    diagnosed after the fact.
    """

    tool = "tool"

    def __init__(self, message: str, returncode: Optional[int] = None, output: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.output = output

    def __str__(self):
        message = super().__str__()
        if self.output:
            return f"{message}\noutput from {self.tool}:\n{self.output}"
        return message


class SplitError(CollaboratorError):
    tool = "mkvmerge"


class TranscodeError(CollaboratorError):
    tool = "ffmpeg"


class AnalysisError(CollaboratorError):
    tool = "ffprobe"


class ResourceError(ReelpipeError):
    """A local resource (socket, directory) could not be acquired."""


class PlacementError(ResourceError):
    """An output could not be placed at its destination."""


class CancelledError(ReelpipeError):
    """The run was cancelled before it finished."""


class PipelineError(ReelpipeError):
    """A pipeline run stopped at a stage.

    Attributes:
        stage: Stage that failed (splitting, transcoding, placing, ...)
        input: Top-level input being processed
        file: File within the input's batch, if any
        outputs: Outputs placed before the failure
    """

    def __init__(
        self,
        message: str,
        stage: str,
        input: Optional[str] = None,
        file: Optional[str] = None,
        outputs: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.stage = stage
        self.input = input
        self.file = file
        self.outputs = list(outputs or [])
