import json
import os
import time
from typing import Any, Callable, Dict, Iterable, NamedTuple, Optional

from gitvis import config_keys
from gitvis.constants import DEFAULT_RELATIONSHIP_CACHE_TTL_SECONDS
from gitvis.exceptions import GitVisException
from gitvis.utils import debug, warn


def get_default_cache_file_path() -> str:
    cache_home = os.environ.get(config_keys.XDG_CACHE_HOME) or os.path.join(os.path.expanduser('~'), '.cache')
    return os.path.join(cache_home, 'gitvis', 'relationships.json')


class RelationshipCacheEntry(NamedTuple):
    relationships: Dict[str, str]
    timestamp: float


class RelationshipCache:
    """Child -> parent branch mappings remembered from previous analyses, one entry per repository.

    Entries older than `ttl_seconds` are ignored, but stay in the cache until overwritten.
    A remembered parent is only ever a hint: it's trusted only as long as the parent branch still exists."""

    def __init__(self, ttl_seconds: float = DEFAULT_RELATIONSHIP_CACHE_TTL_SECONDS,
                 clock: Optional[Callable[[], float]] = None,
                 entries: Optional[Dict[str, RelationshipCacheEntry]] = None) -> None:
        self.ttl_seconds: float = ttl_seconds
        self.__clock = clock
        self.__entries: Dict[str, RelationshipCacheEntry] = dict(entries or {})

    @staticmethod
    def key(owner: str, repo: str) -> str:
        return f"{owner}/{repo}"

    def __now(self) -> float:
        return self.__clock() if self.__clock else time.time()

    def __is_fresh(self, entry: RelationshipCacheEntry) -> bool:
        return self.__now() - entry.timestamp < self.ttl_seconds

    @property
    def entries(self) -> Dict[str, RelationshipCacheEntry]:
        return dict(self.__entries)

    def get_relationships(self, owner: str, repo: str) -> Dict[str, str]:
        entry = self.__entries.get(self.key(owner, repo))
        if entry is None:
            return {}
        if not self.__is_fresh(entry):
            debug(f"cached relationships for {self.key(owner, repo)} are stale, ignoring them")
            return {}
        return dict(entry.relationships)

    def update(self, owner: str, repo: str, relationships: Dict[str, str]) -> None:
        self.__entries[self.key(owner, repo)] = RelationshipCacheEntry(relationships=dict(relationships), timestamp=self.__now())

    def forget(self, owner: str, repo: str) -> bool:
        return self.__entries.pop(self.key(owner, repo), None) is not None

    @staticmethod
    def valid_parent_or_none(relationships: Dict[str, str], branch: str, branch_names: Iterable[str]) -> Optional[str]:
        parent = relationships.get(branch)
        if parent is None:
            return None
        if parent == branch or parent not in branch_names:
            debug(f"cached parent {parent} of {branch} is no longer a valid branch, discarding")
            return None
        return parent

    def to_json(self) -> Dict[str, Any]:
        return {key: {'relationships': entry.relationships, 'timestamp': entry.timestamp}
                for key, entry in self.__entries.items()}

    @classmethod
    def from_json(cls, cache_json: Any, ttl_seconds: float = DEFAULT_RELATIONSHIP_CACHE_TTL_SECONDS,
                  clock: Optional[Callable[[], float]] = None) -> "RelationshipCache":
        if not isinstance(cache_json, dict):
            raise GitVisException("Relationship cache must be a JSON object")
        entries: Dict[str, RelationshipCacheEntry] = {}
        for key, entry_json in cache_json.items():
            relationships = entry_json.get('relationships') if isinstance(entry_json, dict) else None
            timestamp = entry_json.get('timestamp') if isinstance(entry_json, dict) else None
            if not isinstance(relationships, dict) or not isinstance(timestamp, (int, float)) or \
                    not all(isinstance(k, str) and isinstance(v, str) for k, v in relationships.items()):
                raise GitVisException(f"Malformed relationship cache entry for `{key}`")
            entries[key] = RelationshipCacheEntry(relationships=relationships, timestamp=float(timestamp))
        return cls(ttl_seconds=ttl_seconds, clock=clock, entries=entries)

    @classmethod
    def load(cls, path: str, ttl_seconds: float = DEFAULT_RELATIONSHIP_CACHE_TTL_SECONDS,
             clock: Optional[Callable[[], float]] = None) -> "RelationshipCache":
        if not os.path.isfile(path):
            debug(f"relationship cache file {path} does not exist, starting with an empty cache")
            return cls(ttl_seconds=ttl_seconds, clock=clock)
        try:
            with open(path, 'r') as file:
                return cls.from_json(json.load(file), ttl_seconds=ttl_seconds, clock=clock)
        except (OSError, ValueError, GitVisException) as e:
            warn(f"could not read relationship cache from `{path}` ({e}), starting with an empty cache")
            return cls(ttl_seconds=ttl_seconds, clock=clock)

    def save(self, path: str) -> None:
        tmp_path = path + '.tmp'
        try:
            dirname = os.path.dirname(path)
            if dirname:
                os.makedirs(dirname, exist_ok=True)
            with open(tmp_path, 'w') as file:
                json.dump(self.to_json(), file, indent=2, sort_keys=True)
            os.replace(tmp_path, path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise GitVisException(f"Could not save relationship cache to `{path}`: {e}", apply_fmt=False)
        debug(f"saved relationship cache to {path}")
