import time
from typing import Callable, Optional

from gitvis.branch import CompareResult
from gitvis.exceptions import ComparisonFailedException, GitHubApiException, RateLimitExceededException
from gitvis.utils import debug


class RateLimiter:
    """Keeps at least `min_interval` seconds between the starts of two consecutive calls.

    `clock` and `sleep` default to `time.monotonic` and `time.sleep`, resolved at call time."""

    def __init__(self, min_interval: float,
                 clock: Optional[Callable[[], float]] = None,
                 sleep: Optional[Callable[[float], None]] = None) -> None:
        self.min_interval: float = min_interval
        self.__clock = clock
        self.__sleep = sleep
        self.__last_call_time: Optional[float] = None

    def __now(self) -> float:
        return self.__clock() if self.__clock else time.monotonic()

    def wait_if_needed(self) -> None:
        if self.__last_call_time is not None and self.min_interval > 0:
            elapsed = self.__now() - self.__last_call_time
            if elapsed < self.min_interval:
                wait_time = self.min_interval - elapsed
                debug(f"waiting {wait_time:.3f}s before the next request")
                if self.__sleep:
                    self.__sleep(wait_time)
                else:
                    time.sleep(wait_time)
        self.__last_call_time = self.__now()


class Comparator:
    """Compares two refs, one call at a time, with a courtesy delay between calls.

    Callers are expected to issue comparisons sequentially;
    there is no concurrency limiting here apart from the rate limiter."""

    def __init__(self, compare_refs: Callable[[str, str], CompareResult], rate_limiter: RateLimiter) -> None:
        self.__compare_refs = compare_refs
        self.__rate_limiter = rate_limiter
        self.call_count: int = 0

    def compare(self, base: str, head: str) -> CompareResult:
        self.__rate_limiter.wait_if_needed()
        self.call_count += 1
        try:
            result = self.__compare_refs(base, head)
        except RateLimitExceededException:
            raise
        except GitHubApiException as e:
            raise ComparisonFailedException(f"Could not compare {base}...{head}: {e.msg}", status=e.status, apply_fmt=False)
        except Exception as e:
            raise ComparisonFailedException(f"Could not compare {base}...{head}: {e}", apply_fmt=False) from e
        debug(f"{base}...{head}: ahead by {result.ahead_by}, behind by {result.behind_by}, {result.status}")
        return result
