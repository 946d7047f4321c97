"""Error taxonomy for survival analysis runs and their collaborators."""

from __future__ import annotations


class SurvivalError(Exception):
    """Base exception for all survival analysis errors."""

    code = "SURVIVAL_ERROR"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"[{self.code}] {message}")


class AnalysisAlreadyRunning(SurvivalError):
    """Raised when a project already has an analysis in progress."""

    code = "ANALYSIS_ALREADY_RUNNING"

    def __init__(self, project_id: str, run_id: str | None = None) -> None:
        self.project_id = project_id
        self.run_id = run_id
        super().__init__(f"An analysis is already in progress for project {project_id}")


class AnalysisNotFound(SurvivalError):
    code = "ANALYSIS_NOT_FOUND"


class ProjectNotFound(SurvivalError):
    code = "PROJECT_NOT_FOUND"


class AnalysisNotComplete(SurvivalError):
    """Raised when results are requested before a run reached DONE."""

    code = "ANALYSIS_NOT_COMPLETE"


class InconsistentInput(SurvivalError):
    """Raised for pull requests that cannot be analysed at all (e.g. no repository)."""

    code = "INCONSISTENT_INPUT"


class SourceError(SurvivalError):
    """Base class for failures reported by diff and blame collaborators."""

    code = "SOURCE_ERROR"
    transient = True


class DiffUnavailable(SourceError):
    code = "DIFF_UNAVAILABLE"


class FileUnavailable(SourceError):
    code = "FILE_UNAVAILABLE"


class BlameUnavailable(SourceError):
    code = "BLAME_UNAVAILABLE"


class RateLimited(SourceError):
    """Raised when the remote API throttles requests."""

    code = "RATE_LIMITED"

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class AuthenticationFailure(SourceError):
    """Repository credentials were rejected; fatal for the whole run."""

    code = "AUTHENTICATION_FAILURE"
    transient = False
