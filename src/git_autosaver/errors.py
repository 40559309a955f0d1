"""Failure types raised by the save pipeline.

Every failure is terminal for the request that raised it and never for the
process: the queue reports it and moves on to the next pending save.
"""


class AutosaverError(Exception):
    """Base class for all errors raised by Git Autosaver."""


class PipelineFailure(AutosaverError):
    """A pipeline stage ended the request in the FAILED state.

    Attributes:
        message (str): A short, user-facing description of what failed.
        detail (str): The raw output of the git command, for diagnostics.
    """

    def __init__(self, message: str, detail: str = ""):
        super().__init__(message)
        self.message = message
        self.detail = detail.strip()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message} - {self.detail}"
        return self.message


class StageFailure(PipelineFailure):
    """`git add` exited non-zero."""


class CommitFailure(PipelineFailure):
    """`git commit` failed for a reason other than having nothing to commit."""


class RemoteFetchFailure(PipelineFailure):
    """The remote URL could not be read after a rejected push."""


class SetUrlFailure(PipelineFailure):
    """The remote URL could not be switched to the alternate transport."""


class PublishFailure(PipelineFailure):
    """`git push` failed and no alternate transport was available."""


class PublishFallbackFailure(PipelineFailure):
    """`git push` failed over both the original and the alternate transport."""


class CommandTimeout(PipelineFailure):
    """A git command exceeded the configured deadline and was killed."""
