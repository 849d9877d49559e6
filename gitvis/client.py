import json
from typing import Any, Dict, List, Optional, Set

from gitvis.analyzer import BranchTree, calculate_branch_tree
from gitvis.branch import Branch, Commit
from gitvis.comparator import Comparator, RateLimiter
from gitvis.exceptions import GitHubApiException, GitVisException
from gitvis.github import GitHubClient, OrganizationAndRepository, PullRequest
from gitvis.relationship_cache import RelationshipCache
from gitvis.utils import bold, debug, dim, fmt, get_vertical_bar, warn


class GitVisClient:
    def __init__(self, github_client: GitHubClient, compare_delay_ms: int,
                 cache_file_path: Optional[str], relationship_cache_ttl: int) -> None:
        self.__github_client: GitHubClient = github_client
        self.__compare_delay_ms: int = compare_delay_ms
        # None means that relationships are neither read nor remembered.
        self.__cache_file_path: Optional[str] = cache_file_path
        self.__relationship_cache_ttl: int = relationship_cache_ttl

    @property
    def org_and_repo(self) -> OrganizationAndRepository:
        return self.__github_client.get_org_and_repo()

    def create_comparator(self) -> Comparator:
        return Comparator(self.__github_client.compare, RateLimiter(min_interval=self.__compare_delay_ms / 1000.0))

    def __load_relationship_cache(self) -> RelationshipCache:
        if self.__cache_file_path is None:
            return RelationshipCache(ttl_seconds=self.__relationship_cache_ttl)
        return RelationshipCache.load(self.__cache_file_path, ttl_seconds=self.__relationship_cache_ttl)

    def analyze(self, *, default_branch: Optional[str]) -> BranchTree:
        org, repo = self.org_and_repo
        trunk = default_branch or self.__github_client.get_default_branch()
        branches = self.__github_client.get_branches()
        if not branches:
            raise GitVisException(f"No branches found in {bold(str(self.org_and_repo))}")
        if trunk not in (branch.name for branch in branches):
            warn(f"default branch {bold(trunk)} not found among the branches of {bold(str(self.org_and_repo))}")
        debug(f"analyzing {len(branches)} branches of {org}/{repo} with {trunk} as trunk")

        relationship_cache = self.__load_relationship_cache()
        tree = calculate_branch_tree(
            branches=branches,
            owner=org,
            repo=repo,
            default_branch=trunk,
            comparator=self.create_comparator(),
            relationship_cache=relationship_cache)
        if tree.rate_limit_exceeded:
            warn("GitHub API rate limit has been exceeded, the tree below is guessed from branch names only.\n"
                 "Try again later to get the actual branch relationships.")
        if self.__cache_file_path is not None and not tree.used_fallback:
            try:
                tree.relationship_cache.save(self.__cache_file_path)
            except GitVisException as e:
                warn(f"{e.msg}, branch relationships will not be remembered", apply_fmt=False)
        return tree

    def attach_unique_commits(self, tree: BranchTree) -> None:
        """For each branch with a parent, fetches the recent commits that are not in the parent's recent history.

        Only the most recent commits of each branch are fetched, so for long-lived branches
        the result is a lower bound of the actual unique history."""
        commits_by_branch: Dict[str, List[Commit]] = {}

        def get_commits(branch_name: str) -> List[Commit]:
            if branch_name not in commits_by_branch:
                commits_by_branch[branch_name] = self.__github_client.get_commits(branch_name)
            return commits_by_branch[branch_name]

        branch_by_name: Dict[str, Branch] = {branch.name: branch for branch in tree.branches}
        for index, connection in enumerate(tree.connections):
            branch = branch_by_name.get(connection.from_branch)
            if branch is None or connection.to_branch not in branch_by_name:
                continue
            try:
                parent_shas = {commit.sha for commit in get_commits(connection.to_branch)}
                branch.commits = [commit for commit in get_commits(branch.name) if commit.sha not in parent_shas]
            except GitHubApiException as e:
                warn(f"could not fetch commits of {bold(branch.name)}: {e.msg}", apply_fmt=False)
                continue
            tree.connections[index] = connection._replace(commit_count=len(branch.commits))

    def tree(self, *, default_branch: Optional[str], opt_json: bool, opt_list_commits: bool = False) -> None:
        tree = self.analyze(default_branch=default_branch)
        if opt_list_commits:
            if tree.used_fallback:
                warn("branch relationships have been guessed, commits are not listed")
            else:
                self.attach_unique_commits(tree)
        if opt_json:
            print(json.dumps(self.tree_to_json(tree), indent=2))
        else:
            print(self.render_tree(tree), end='')

    @staticmethod
    def tree_to_json(tree: BranchTree) -> Dict[str, Any]:
        return {
            'branches': [branch.to_json() for branch in tree.branches],
            'connections': [connection.to_json() for connection in tree.connections],
            'relationships': tree.relationships,
            'usedFallback': tree.used_fallback,
        }

    @staticmethod
    def __format_ahead_by(branch: Branch) -> str:
        if branch.ahead_by is None:
            return dim("(ahead by unknown)")
        elif branch.ahead_by == 0:
            return dim("(merged)")
        elif branch.ahead_by == 1:
            return dim("(1 commit ahead)")
        else:
            return dim(f"({branch.ahead_by} commits ahead)")

    @classmethod
    def render_tree(cls, tree: BranchTree) -> str:
        branch_by_name: Dict[str, Branch] = {branch.name: branch for branch in tree.branches}
        roots = sorted((branch for branch in tree.branches if branch.parent is None or branch.parent not in branch_by_name),
                       key=lambda b: (b.depth or 0, b.name))
        printed: Set[str] = set()
        lines: List[str] = []
        bar = get_vertical_bar()

        def print_subtree(branch: Branch, prefix: str) -> None:
            for index, child_name in enumerate(branch.children):
                child = branch_by_name.get(child_name)
                if child is None or child_name in printed:
                    continue
                printed.add(child_name)
                has_next_sibling = index < len(branch.children) - 1
                lines.append(f"{prefix}{bar}")
                for commit in child.commits or []:
                    lines.append(f"{prefix}{bar} {dim(commit.short_sha)}  {dim(commit.subject)}")
                lines.append(f"{prefix}o-{bold(child.name)}  {cls.__format_ahead_by(child)}")
                print_subtree(child, prefix + (f"{bar} " if has_next_sibling else "  "))

        def print_root(root: Branch) -> None:
            printed.add(root.name)
            if lines:
                lines.append("")
            if root.parent is None:
                lines.append(bold(root.name))
            elif root.parent not in branch_by_name:
                lines.append(f"{bold(root.name)}  {dim(f'(parent {root.parent} not found)')}")
            else:
                lines.append(f"{bold(root.name)}  {dim(f'(parent cycle through {root.parent})')}")
            print_subtree(root, "")

        for root in roots:
            print_root(root)
        # Only branches caught in a parent cycle can still be left out at this point.
        for branch in sorted(tree.branches, key=lambda b: b.name):
            if branch.name not in printed:
                print_root(branch)
        return "".join(line + "\n" for line in lines)

    def compare(self, base: str, head: str) -> None:
        result = self.create_comparator().compare(base, head)
        print(fmt(f"<b>{head}</b> compared to <b>{base}</b>: "
                  f"ahead by {result.ahead_by}, behind by {result.behind_by} ({result.status})"))

    def forget(self) -> None:
        if self.__cache_file_path is None:
            raise GitVisException("Relationship cache is disabled, there is nothing to forget")
        relationship_cache = self.__load_relationship_cache()
        org, repo = self.org_and_repo
        if relationship_cache.forget(org, repo):
            relationship_cache.save(self.__cache_file_path)
            print(fmt(f"Forgot cached branch relationships of <b>{org}/{repo}</b>"))
        else:
            print(fmt(f"No cached branch relationships of <b>{org}/{repo}</b>"))

    def create_branch(self, name: str, *, opt_from: Optional[str]) -> None:
        source = opt_from or self.__github_client.get_default_branch()
        source_branch = self.__github_client.get_branch(source)
        self.__github_client.create_branch(name, source_branch.commit_sha)
        print(fmt(f"Created branch <b>{name}</b> at <b>{source}</b> ({source_branch.commit_sha[:7]})"))

    def create_pull_request(self, head: str, base: str, *, opt_title: Optional[str], opt_body: Optional[str], opt_draft: bool) -> PullRequest:
        pr = self.__github_client.create_pull_request(
            head=head, base=base, title=opt_title or head, description=opt_body or '', draft=opt_draft)
        draft_text = " (draft)" if pr.draft else ""
        print(fmt(f"Created pull request <b>#{pr.number}</b>{draft_text}: {head} -> {base}\n{pr.html_url}"))
        return pr
