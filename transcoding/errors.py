"""
Failure taxonomy for the transcoding stages.

Every stage catches these at its top level, cleans up and reports a neutral
completion, so none of them ever reaches the storage trigger.
"""

# Error text (ffmpeg stderr included) is truncated to this many characters.
MAX_ERROR_CHARS = 4000


class PipelineError(Exception):
    """Base class for errors that abort a single stage invocation."""


class SkipCondition(PipelineError):
    """
    A deliberate no-op decided by the guard. Not a failure; only raised by callers
    that want to surface a skip as an exception (operator commands).
    """

    def __init__(self, reason):
        self.reason = reason
        super().__init__(f"{reason.code}: {reason.detail}")


class TransientIOError(PipelineError):
    """Download, upload or URL-signing failure against object storage."""


class TranscodeError(PipelineError):
    """The external transcoder failed on the input or could not be run at all."""

    def __init__(self, message: str, *, command=None, stderr: str = ""):
        self.command = list(command or [])
        self.stderr = (stderr or "")[-MAX_ERROR_CHARS:]
        super().__init__(message)


class ReconciliationError(PipelineError):
    """Media was produced but writing the result back to the document store failed."""
