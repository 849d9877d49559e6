from typing import Any, Dict, List, NamedTuple, Optional


class Commit(NamedTuple):
    sha: str
    message: str
    author_name: str
    date: str

    @classmethod
    def from_json(cls, commit_json: Dict[str, Any]) -> "Commit":
        commit = commit_json.get('commit') or {}
        author = commit.get('author') or {}
        return cls(
            sha=commit_json['sha'],
            message=commit.get('message', ''),
            author_name=author.get('name', ''),
            date=author.get('date', ''))

    @property
    def short_sha(self) -> str:
        return self.sha[:7]

    @property
    def subject(self) -> str:
        return self.message.split('\n', 1)[0]

    def to_json(self) -> Dict[str, Any]:
        return {'sha': self.sha, 'commit': {'message': self.message, 'author': {'name': self.author_name, 'date': self.date}}}


class Branch:
    """A branch as listed by GitHub, enriched by the analysis with its place in the inferred tree.

    `ahead_by` of `None` means that the comparison with the parent failed,
    which is something else than `0` (no commits of its own, i.e. merged).
    `commits` stays `None` unless the commits unique to the branch have been fetched."""

    def __init__(self, name: str, commit_sha: str, commit_url: str = '', protected: bool = False) -> None:
        self.name: str = name
        self.commit_sha: str = commit_sha
        self.commit_url: str = commit_url
        self.protected: bool = protected
        self.parent: Optional[str] = None
        self.depth: Optional[int] = None
        self.children: List[str] = []
        self.ahead_by: Optional[int] = None
        self.commits: Optional[List[Commit]] = None

    @classmethod
    def from_json(cls, branch_json: Dict[str, Any]) -> "Branch":
        commit = branch_json.get('commit') or {}
        return cls(
            name=branch_json['name'],
            commit_sha=commit.get('sha', ''),
            commit_url=commit.get('url', ''),
            protected=bool(branch_json.get('protected', False)))

    def copy(self) -> "Branch":
        """Returns a fresh record with the same identity, but none of the tree fields set."""
        return Branch(name=self.name, commit_sha=self.commit_sha, commit_url=self.commit_url, protected=self.protected)

    def to_json(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'name': self.name,
            'commit': {'sha': self.commit_sha, 'url': self.commit_url},
            'protected': self.protected,
            'parent': self.parent,
            'depth': self.depth,
            'children': list(self.children),
            'aheadBy': self.ahead_by,
        }
        if self.commits is not None:
            result['commits'] = [commit.to_json() for commit in self.commits]
        return result

    def __repr__(self) -> str:
        return f"{self.name} (parent={self.parent}, depth={self.depth}, ahead_by={self.ahead_by}, children={self.children})"


class CompareResult(NamedTuple):
    ahead_by: int
    behind_by: int
    status: str

    @classmethod
    def from_json(cls, compare_json: Dict[str, Any]) -> "CompareResult":
        return cls(
            ahead_by=int(compare_json['ahead_by']),
            behind_by=int(compare_json['behind_by']),
            status=str(compare_json['status']))

    def is_descendant(self) -> bool:
        """Head has commits of its own and none of base's are missing, i.e. head has been forked off base."""
        return self.ahead_by > 0 and self.behind_by == 0

    def is_merged(self) -> bool:
        return self.ahead_by == 0 and self.behind_by >= 0


UNKNOWN_COMPARE_RESULT = CompareResult(ahead_by=0, behind_by=0, status='unknown')


class MergedBranchInfo(NamedTuple):
    merged_into: str
    ahead_by: int = 0


class BranchConnection(NamedTuple):
    from_branch: str
    to_branch: str
    # Number of commits of `from_branch` not found in `to_branch`; only known once commits are fetched.
    commit_count: int = 0

    def to_json(self) -> Dict[str, Any]:
        return {'from': self.from_branch, 'to': self.to_branch, 'commitCount': self.commit_count}
