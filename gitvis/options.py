from typing import Optional

from gitvis.constants import (DEFAULT_COMPARE_DELAY_MS,
                              DEFAULT_RELATIONSHIP_CACHE_TTL_SECONDS)


class CommandLineOptions:

    def __init__(self) -> None:
        self.opt_body: Optional[str] = None
        self.opt_cache_file: Optional[str] = None
        self.opt_compare_delay_ms: int = DEFAULT_COMPARE_DELAY_MS
        self.opt_default_branch: Optional[str] = None
        self.opt_draft: bool = False
        self.opt_from: Optional[str] = None
        self.opt_github_domain: Optional[str] = None
        self.opt_json: bool = False
        self.opt_list_commits: bool = False
        self.opt_no_cache: bool = False
        self.opt_relationship_cache_ttl: int = DEFAULT_RELATIONSHIP_CACHE_TTL_SECONDS
        self.opt_title: Optional[str] = None

    def __repr__(self) -> str:  # pragma: no cover; debug only
        attrs = ", ".join(f"{k}={v!r}" for k, v in self.__dict__.items())
        return f"{self.__class__.__module__}.{self.__class__.__qualname__}({attrs})"
