import re
from typing import Pattern

DEFAULT_COMPARE_DELAY_MS = 50
DEFAULT_RELATIONSHIP_CACHE_TTL_SECONDS = 24 * 60 * 60
# Deeper chains are still tracked via `parent`, only the reported depth is capped.
MAX_TREE_DEPTH = 5
# Trunk branch is always considered ahead.
TRUNK_AHEAD_BY_SENTINEL = 1
FALLBACK_AHEAD_BY = 1
# Fewer failures than that are rather transient than systemic, and do not trigger the fallback.
MIN_SYSTEMIC_FAILURE_COUNT = 2
COMMITS_PER_BRANCH_COUNT = 50

DEVELOP_BRANCH_PATTERN: Pattern[str] = re.compile(r'^(develop|dev|development)$', re.IGNORECASE)
FEATURE_BRANCH_PATTERN: Pattern[str] = re.compile(r'^(feature|feat)/', re.IGNORECASE)
BUGFIX_BRANCH_PATTERN: Pattern[str] = re.compile(r'^(bugfix|fix|hotfix)/', re.IGNORECASE)
