from enum import IntEnum
from typing import Optional

from gitvis import utils

NEW_ISSUE_LINK = "https://github.com/gitvis/gitvis/issues/new"


class GitVisException(Exception):
    def __init__(self, msg: str, apply_fmt: bool = True) -> None:
        self.msg: str = utils.fmt(msg) if apply_fmt else msg

    def __str__(self) -> str:
        return str(self.msg)


class UnexpectedGitVisException(GitVisException):
    def __init__(self, msg: str, apply_fmt: bool = True) -> None:
        super().__init__(f"{msg}\n\nConsider posting an issue at `{NEW_ISSUE_LINK}`", apply_fmt=apply_fmt)


class GitHubApiException(GitVisException):
    def __init__(self, msg: str, status: Optional[int] = None, apply_fmt: bool = True) -> None:
        super().__init__(msg, apply_fmt=apply_fmt)
        self.status: Optional[int] = status


class RateLimitExceededException(GitHubApiException):
    """Raised when GitHub reports that the API rate limit has been used up (`X-RateLimit-Remaining: 0`)."""


class ComparisonFailedException(GitHubApiException):
    pass


class SystemicAnalysisException(GitVisException):
    pass


class ExitCode(IntEnum):
    SUCCESS = 0
    GITVIS_EXCEPTION = 1
    ARGUMENT_ERROR = 2
    KEYBOARD_INTERRUPT = 3
    END_OF_FILE_SIGNAL = 4
