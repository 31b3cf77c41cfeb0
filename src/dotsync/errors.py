"""Exception hierarchy for dotsync."""


class SyncError(Exception):
    """Base class for all dotsync errors."""


class ConfigurationError(SyncError):
    """Raised when the daemon cannot start, e.g. the watched root is missing.

    Configuration errors are fatal: retrying cannot help without an operator.
    """


class GitError(SyncError):
    """Raised when a git subprocess exits with a non-zero status.

    Attributes:
        reason (str): The stderr output (or exception text) reported by git.
    """

    def __init__(self, reason: str):
        super().__init__(f"Git error: {reason}")
        self.reason = reason
