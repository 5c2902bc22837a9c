"""Error taxonomy for ccspy.

Only SessionDirectoryMissing is terminal. Everything else is raised inside
the watch loop or an analysis call and is converted to a status line there.
"""

from __future__ import annotations

from pathlib import Path


class CCSpyError(Exception):
    """Base class for all ccspy errors."""


class FileTransientError(CCSpyError):
    """Transcript could not be read right now (mid-write, rotated, locked)."""


class SessionDirectoryMissing(CCSpyError):
    """No transcript directory exists for the watched project."""

    def __init__(self, project_dir: Path):
        super().__init__(f"No Claude project found at {project_dir}")
        self.project_dir = project_dir


class ManualTriggerRejectedBusy(CCSpyError):
    """A manual analysis was requested while another one is in flight."""


# ---------------------------------------------------------------------------
# Analysis failures
# ---------------------------------------------------------------------------


class AnalysisError(CCSpyError):
    """Base for analysis failures. ``hint`` is shown to the user."""

    hint = ""


class CredentialMissing(AnalysisError):
    def __init__(self, env_var: str):
        super().__init__(f"{env_var} environment variable not set")
        self.env_var = env_var
        self.hint = f"export {env_var}='your-api-key-here'"


class AnalysisTimeout(AnalysisError):
    hint = "The analysis endpoint did not answer in time; the network may be slow."


class AnalysisUnauthorized(AnalysisError):
    hint = "Invalid API key - check the configured credential variable."


class AnalysisRateLimited(AnalysisError):
    hint = "Rate limited - wait a moment and try again."


class AnalysisTransportError(AnalysisError):
    hint = "Network error - check your internet connection and the API base URL."
