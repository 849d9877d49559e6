from collections import OrderedDict
from typing import Dict, List, NamedTuple, Optional, Tuple

from gitvis.branch import (UNKNOWN_COMPARE_RESULT, Branch, BranchConnection,
                           CompareResult, MergedBranchInfo)
from gitvis.comparator import Comparator
from gitvis.constants import (BUGFIX_BRANCH_PATTERN, DEVELOP_BRANCH_PATTERN,
                              FALLBACK_AHEAD_BY, FEATURE_BRANCH_PATTERN,
                              MAX_TREE_DEPTH, MIN_SYSTEMIC_FAILURE_COUNT,
                              TRUNK_AHEAD_BY_SENTINEL)
from gitvis.exceptions import (ComparisonFailedException,
                               RateLimitExceededException,
                               SystemicAnalysisException)
from gitvis.relationship_cache import RelationshipCache
from gitvis.utils import bold, debug, find_or_none, warn


class ResolutionContext:
    """State of a single analysis pass, threaded through all its phases.

    `merged_branches` is filled by merge detection and extended by parent resolution;
    branches present there are never considered as parent candidates."""

    def __init__(self, branches: List[Branch], trunk: str, comparator: Comparator,
                 cached_relationships: Optional[Dict[str, str]] = None) -> None:
        self.branches: List[Branch] = branches
        self.trunk: str = trunk
        self.comparator: Comparator = comparator
        self.cached_relationships: Dict[str, str] = dict(cached_relationships or {})
        self.branch_by_name: Dict[str, Branch] = OrderedDict((branch.name, branch) for branch in branches)
        self.merged_branches: Dict[str, MergedBranchInfo] = OrderedDict()
        self.relationships: Dict[str, str] = OrderedDict()
        self.__compare_results: Dict[Tuple[str, str], CompareResult] = {}

    def non_trunk_branches(self) -> List[Branch]:
        return sorted((branch for branch in self.branch_by_name.values() if branch.name != self.trunk), key=lambda b: b.name)

    def compare_or_none(self, base: str, head: str) -> Optional[CompareResult]:
        """Returns None if the comparison failed; the failure is reported, but never fatal.
        Successful results are reused within the pass, as the same pair is often compared in more than one phase."""
        if (base, head) in self.__compare_results:
            return self.__compare_results[(base, head)]
        try:
            result = self.comparator.compare(base, head)
        except ComparisonFailedException as e:
            warn(f"could not compare {bold(base)} with {bold(head)}: {e.msg}", apply_fmt=False)
            return None
        self.__compare_results[(base, head)] = result
        return result


class BranchTree(NamedTuple):
    branches: List[Branch]
    connections: List[BranchConnection]
    # child -> parent, suitable for persisting and passing back into the next analysis
    relationships: Dict[str, str]
    relationship_cache: RelationshipCache
    used_fallback: bool = False
    rate_limit_exceeded: bool = False


def detect_merged_branches(context: ResolutionContext) -> Dict[str, MergedBranchInfo]:
    attempted_count = 0
    failed_count = 0
    for branch in context.branches:
        if branch.name == context.trunk:
            continue
        attempted_count += 1
        result = context.compare_or_none(context.trunk, branch.name)
        if result is None:
            failed_count += 1
        elif result.is_merged():
            debug(f"{branch.name} has no commits that {context.trunk} doesn't have, considering it merged")
            context.merged_branches[branch.name] = MergedBranchInfo(merged_into=context.trunk)
    if attempted_count >= MIN_SYSTEMIC_FAILURE_COUNT and failed_count == attempted_count:
        raise SystemicAnalysisException(
            f"All {attempted_count} comparisons against {bold(context.trunk)} failed")
    return context.merged_branches


def find_best_parent(context: ResolutionContext, branch: str) -> str:
    already_merged = branch in context.merged_branches
    best_parent = context.trunk
    shortest_distance: Optional[int] = None

    # Sorted, so that when two candidates are at the same distance, the alphabetically first one wins.
    candidates = sorted(name for name in context.branch_by_name
                        if name != branch and name not in context.merged_branches)
    for candidate in candidates:
        result = context.compare_or_none(candidate, branch)
        if result is None:
            continue
        if result.is_descendant():
            if shortest_distance is None or result.ahead_by < shortest_distance:
                shortest_distance = result.ahead_by
                best_parent = candidate
        elif result.is_merged() and not already_merged:
            debug(f"{branch} is fully contained in {candidate}, attaching it there")
            context.merged_branches[branch] = MergedBranchInfo(merged_into=candidate)
            return candidate
    return best_parent


def resolve_parents(context: ResolutionContext) -> Dict[str, str]:
    for branch in context.non_trunk_branches():
        cached_parent = RelationshipCache.valid_parent_or_none(context.cached_relationships, branch.name, context.branch_by_name)
        if cached_parent:
            debug(f"using cached parent {cached_parent} of {branch.name}")
            context.relationships[branch.name] = cached_parent
            continue
        parent = find_best_parent(context, branch.name)
        debug(f"inferred parent of {branch.name} is {parent}")
        context.relationships[branch.name] = parent
    return context.relationships


def finalize_ahead_by(context: ResolutionContext) -> None:
    for branch in context.non_trunk_branches():
        parent = context.relationships.get(branch.name, context.trunk)
        result = context.compare_or_none(parent, branch.name)
        branch.ahead_by = result.ahead_by if result else None


def compute_depth(branch: str, relationships: Dict[str, str], trunk: str) -> int:
    depth = 1
    current: Optional[str] = relationships.get(branch, trunk)
    visited = {branch}
    while current and current != trunk and current not in visited and depth < MAX_TREE_DEPTH:
        visited.add(current)
        depth += 1
        current = relationships.get(current)
    return min(depth, MAX_TREE_DEPTH)


def build_tree(context: ResolutionContext) -> List[BranchConnection]:
    connections: List[BranchConnection] = []
    for branch in context.non_trunk_branches():
        parent = context.relationships.get(branch.name, context.trunk)
        branch.parent = parent
        branch.depth = compute_depth(branch.name, context.relationships, context.trunk)
        parent_branch = context.branch_by_name.get(parent)
        if parent_branch:
            parent_branch.children.append(branch.name)
        connections.append(BranchConnection(from_branch=branch.name, to_branch=parent))
    return connections


def initialize_trunk(branches: List[Branch], trunk: str) -> None:
    for branch in branches:
        if branch.name == trunk:
            branch.parent = None
            branch.depth = 0
            branch.ahead_by = TRUNK_AHEAD_BY_SENTINEL


def apply_fallback_heuristics(branches: List[Branch], trunk: str) -> List[BranchConnection]:
    """Guesses the tree purely from branch names, without any network calls."""
    initialize_trunk(branches, trunk)
    branch_by_name: Dict[str, Branch] = OrderedDict((branch.name, branch) for branch in branches)
    develop = find_or_none(lambda b: b.name != trunk and bool(DEVELOP_BRANCH_PATTERN.match(b.name)), branch_by_name.values())

    connections: List[BranchConnection] = []
    for branch in sorted(branch_by_name.values(), key=lambda b: b.name):
        if branch.name == trunk:
            continue
        if develop and (FEATURE_BRANCH_PATTERN.match(branch.name) or BUGFIX_BRANCH_PATTERN.match(branch.name)):
            branch.parent = develop.name
            branch.depth = 2
        else:
            branch.parent = trunk
            branch.depth = 1
        branch.ahead_by = FALLBACK_AHEAD_BY
        parent_branch = branch_by_name.get(branch.parent)
        if parent_branch:
            parent_branch.children.append(branch.name)
        connections.append(BranchConnection(from_branch=branch.name, to_branch=branch.parent))
    return connections


def calculate_branch_tree(
        branches: List[Branch],
        owner: str,
        repo: str,
        default_branch: str,
        comparator: Comparator,
        relationship_cache: Optional[RelationshipCache] = None
) -> BranchTree:
    """Infers parent, depth, children and ahead-by for each of the given branches.

    Input branches are left untouched; the returned branches are fresh copies.
    Never raises: if the analysis fails as a whole, the tree is guessed from branch names instead,
    and the relationship cache is left as it was."""
    if relationship_cache is None:
        relationship_cache = RelationshipCache()
    working_branches = [branch.copy() for branch in branches]

    try:
        context = ResolutionContext(
            branches=working_branches,
            trunk=default_branch,
            comparator=comparator,
            cached_relationships=relationship_cache.get_relationships(owner, repo))
        initialize_trunk(working_branches, default_branch)
        detect_merged_branches(context)
        resolve_parents(context)
        finalize_ahead_by(context)
        connections = build_tree(context)
        relationships = dict(context.relationships)
        relationship_cache.update(owner, repo, relationships)
    except RateLimitExceededException as e:
        warn(f"{e.msg}\nFalling back to guessing branch relationships by branch names.", apply_fmt=False)
        return _fall_back(branches, default_branch, relationship_cache, rate_limit_exceeded=True)
    except Exception as e:
        warn(f"could not analyze branch relationships ({e}), falling back to guessing them by branch names", apply_fmt=False)
        return _fall_back(branches, default_branch, relationship_cache, rate_limit_exceeded=False)

    debug(f"analyzed {len(working_branches)} branches with {comparator.call_count} comparisons")
    return BranchTree(
        branches=working_branches,
        connections=connections,
        relationships=relationships,
        relationship_cache=relationship_cache)


def _fall_back(branches: List[Branch], default_branch: str, relationship_cache: RelationshipCache,
                *, rate_limit_exceeded: bool) -> BranchTree:
    fallback_branches = [branch.copy() for branch in branches]
    connections = apply_fallback_heuristics(fallback_branches, default_branch)
    return BranchTree(
        branches=fallback_branches,
        connections=connections,
        relationships={branch.name: branch.parent for branch in fallback_branches if branch.parent is not None},
        relationship_cache=relationship_cache,
        used_fallback=True,
        rate_limit_exceeded=rate_limit_exceeded)


def analyze_branch_status(comparator: Comparator, branch: str, parent: str) -> CompareResult:
    try:
        return comparator.compare(parent, branch)
    except ComparisonFailedException as e:
        warn(f"could not analyze status of {bold(branch)} relative to {bold(parent)}: {e.msg}", apply_fmt=False)
        return UNKNOWN_COMPARE_RESULT


def list_merged_branches(comparator: Comparator, branches: List[Branch], target: str) -> List[str]:
    merged: List[str] = []
    for branch in branches:
        if branch.name == target:
            continue
        status = analyze_branch_status(comparator, branch.name, target)
        if status != UNKNOWN_COMPARE_RESULT and status.is_merged():
            merged.append(branch.name)
    return merged
