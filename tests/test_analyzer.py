from typing import Dict, List, Optional

import pytest

from gitvis.analyzer import (BranchTree, ResolutionContext,
                             analyze_branch_status, apply_fallback_heuristics,
                             calculate_branch_tree, compute_depth,
                             detect_merged_branches, find_best_parent,
                             list_merged_branches)
from gitvis.branch import UNKNOWN_COMPARE_RESULT, Branch, BranchConnection
from gitvis.exceptions import (RateLimitExceededException,
                               SystemicAnalysisException)
from gitvis.relationship_cache import RelationshipCache
from tests.base_test import BaseTest
from tests.mockers import (MockCompareRefs, create_branches,
                           create_comparator)


def by_name(tree: BranchTree) -> Dict[str, Branch]:
    return {branch.name: branch for branch in tree.branches}


def analyze(branches: List[Branch], compare_refs: MockCompareRefs,
            relationship_cache: Optional[RelationshipCache] = None) -> BranchTree:
    return calculate_branch_tree(
        branches=branches,
        owner='example-org',
        repo='example-repo',
        default_branch='main',
        comparator=create_comparator(compare_refs),
        relationship_cache=relationship_cache)


class TestAnalyzer(BaseTest):

    def test_siblings_forked_off_trunk(self) -> None:
        compare_refs = MockCompareRefs({
            ('main', 'feature-1'): (3, 0),
            ('main', 'feature-2'): (2, 0),
        }, default=(1, 1))

        tree = analyze(create_branches('main', 'feature-1', 'feature-2'), compare_refs)
        branches = by_name(tree)

        assert not tree.used_fallback
        assert branches['feature-1'].parent == 'main'
        assert branches['feature-2'].parent == 'main'
        assert set(branches['main'].children) == {'feature-1', 'feature-2'}
        assert branches['feature-1'].depth == 1
        assert branches['feature-2'].depth == 1
        assert branches['feature-1'].ahead_by == 3
        assert branches['feature-2'].ahead_by == 2
        assert tree.relationships == {'feature-1': 'main', 'feature-2': 'main'}

    def test_trunk_fields(self) -> None:
        compare_refs = MockCompareRefs({('main', 'feature'): (1, 0)})

        main = by_name(analyze(create_branches('main', 'feature'), compare_refs))['main']

        assert main.parent is None
        assert main.depth == 0
        assert main.ahead_by == 1
        assert main.children == ['feature']

    def test_branch_merged_into_trunk(self) -> None:
        compare_refs = MockCompareRefs({('main', 'old-feature'): (0, 5)})

        tree = analyze(create_branches('main', 'old-feature'), compare_refs)
        old_feature = by_name(tree)['old-feature']

        assert old_feature.parent == 'main'
        assert old_feature.ahead_by == 0
        assert old_feature.depth == 1

    def test_merged_branch_is_never_a_parent(self) -> None:
        compare_refs = MockCompareRefs({
            ('main', 'old-feature'): (0, 5),
            ('main', 'feature'): (4, 0),
            ('old-feature', 'feature'): (1, 0),
        }, default=(1, 1))

        tree = analyze(create_branches('main', 'old-feature', 'feature'), compare_refs)

        assert by_name(tree)['feature'].parent == 'main'
        assert ('old-feature', 'feature') not in compare_refs.calls

    def test_nearest_ancestor_wins(self) -> None:
        compare_refs = MockCompareRefs({
            ('main', 'develop'): (3, 0),
            ('main', 'feature/login'): (5, 0),
            ('develop', 'feature/login'): (2, 0),
        }, default=(1, 1))

        tree = analyze(create_branches('main', 'develop', 'feature/login'), compare_refs)
        branches = by_name(tree)

        assert branches['develop'].parent == 'main'
        assert branches['feature/login'].parent == 'develop'
        assert branches['feature/login'].depth == 2
        assert branches['feature/login'].ahead_by == 2
        assert branches['develop'].children == ['feature/login']
        assert BranchConnection(from_branch='feature/login', to_branch='develop') in tree.connections
        assert BranchConnection(from_branch='develop', to_branch='main') in tree.connections

    def test_candidate_behind_is_not_an_ancestor(self) -> None:
        compare_refs = MockCompareRefs({
            ('main', 'feature'): (5, 0),
            ('release', 'feature'): (1, 2),
            ('main', 'release'): (2, 0),
        }, default=(1, 1))

        tree = analyze(create_branches('main', 'release', 'feature'), compare_refs)

        assert by_name(tree)['feature'].parent == 'main'

    def test_tie_is_resolved_alphabetically(self) -> None:
        compare_refs = MockCompareRefs({
            ('main', 'alpha'): (1, 0),
            ('main', 'beta'): (1, 0),
            ('main', 'gamma'): (4, 0),
            ('beta', 'gamma'): (2, 0),
            ('alpha', 'gamma'): (2, 0),
        }, default=(1, 1))

        # Listed in reverse order on purpose, the result must not depend on it.
        tree = analyze(create_branches('main', 'gamma', 'beta', 'alpha'), compare_refs)

        assert by_name(tree)['gamma'].parent == 'alpha'

    def test_branch_contained_in_candidate_is_attached_to_it(self) -> None:
        compare_refs = MockCompareRefs({
            ('main', 'copy'): (3, 0),
            ('main', 'feature'): (3, 0),
            ('main', 'zeta'): (5, 0),
            ('feature', 'copy'): (0, 2),
            ('copy', 'zeta'): (1, 0),
            ('feature', 'zeta'): (2, 0),
        }, default=(1, 1))

        tree = analyze(create_branches('main', 'copy', 'feature', 'zeta'), compare_refs)
        branches = by_name(tree)

        assert branches['copy'].parent == 'feature'
        assert branches['copy'].ahead_by == 0
        assert branches['copy'].depth == 2
        # Once attached, `copy` is treated as merged and is no longer a parent candidate.
        assert branches['zeta'].parent == 'feature'
        assert ('copy', 'zeta') not in compare_refs.calls
        assert ('copy', 'feature') not in compare_refs.calls

    def test_failed_comparisons_are_skipped(self) -> None:
        compare_refs = MockCompareRefs({
            ('main', 'a'): (2, 0),
            ('main', 'b'): (3, 0),
            ('a', 'b'): (1, 0),
        }, default=(1, 1), failing=[('main', 'c'), ('a', 'c'), ('b', 'c')])

        tree = analyze(create_branches('main', 'a', 'b', 'c'), compare_refs)
        branches = by_name(tree)

        assert not tree.used_fallback
        assert branches['b'].parent == 'a'
        assert branches['b'].ahead_by == 1
        assert branches['c'].parent == 'main'
        assert branches['c'].ahead_by is None

    def test_comparator_always_failing_falls_back(self) -> None:
        compare_refs = MockCompareRefs({}, failing=[])

        tree = analyze(create_branches('main', 'develop', 'feature/login', 'hotfix'), compare_refs)
        branches = by_name(tree)

        assert tree.used_fallback
        assert not tree.rate_limit_exceeded
        assert branches['develop'].parent == 'main'
        assert branches['feature/login'].parent == 'develop'
        assert branches['hotfix'].parent == 'main'

    def test_single_failing_branch_does_not_fall_back(self) -> None:
        compare_refs = MockCompareRefs({}, failing=[('main', 'feature/login')])

        tree = analyze(create_branches('main', 'feature/login'), compare_refs)
        branch = by_name(tree)['feature/login']

        assert not tree.used_fallback
        assert branch.parent == 'main'
        assert branch.depth == 1
        assert branch.ahead_by is None

    def test_rate_limit_falls_back(self) -> None:
        compare_refs = MockCompareRefs({}, error=RateLimitExceededException("GitHub API rate limit exceeded", status=403))
        relationship_cache = RelationshipCache()

        tree = analyze(create_branches('main', 'develop', 'feature/login'), compare_refs, relationship_cache)

        assert tree.used_fallback
        assert tree.rate_limit_exceeded
        assert len(compare_refs.calls) == 1
        assert by_name(tree)['feature/login'].parent == 'develop'
        assert relationship_cache.entries == {}

    def test_input_branches_are_left_untouched(self) -> None:
        compare_refs = MockCompareRefs({('main', 'feature'): (1, 0)})
        branches = create_branches('main', 'feature')

        tree = analyze(branches, compare_refs)

        assert by_name(tree)['feature'].parent == 'main'
        for branch in branches:
            assert branch.parent is None
            assert branch.depth is None
            assert branch.children == []
            assert branch.ahead_by is None
        assert all(branch not in branches for branch in tree.branches)

    def test_relationships_are_remembered(self) -> None:
        compare_refs = MockCompareRefs({
            ('main', 'develop'): (3, 0),
            ('main', 'feature'): (5, 0),
            ('develop', 'feature'): (2, 0),
        }, default=(1, 1))
        relationship_cache = RelationshipCache()

        analyze(create_branches('main', 'develop', 'feature'), compare_refs, relationship_cache)

        assert relationship_cache.get_relationships('example-org', 'example-repo') == {'develop': 'main', 'feature': 'develop'}
        assert relationship_cache.get_relationships('example-org', 'other-repo') == {}

    def test_cached_parent_skips_candidate_scan(self) -> None:
        compare_refs = MockCompareRefs({
            ('main', 'develop'): (3, 0),
            ('main', 'feature'): (5, 0),
            ('develop', 'feature'): (2, 0),
        }, default=(1, 1))
        relationship_cache = RelationshipCache()
        relationship_cache.update('example-org', 'example-repo', {'feature': 'develop'})

        tree = analyze(create_branches('main', 'develop', 'feature'), compare_refs, relationship_cache)
        feature = by_name(tree)['feature']

        assert feature.parent == 'develop'
        assert feature.ahead_by == 2
        # Only merge detection and ahead-by finalization
        assert compare_refs.calls_with_head('feature') == [('main', 'feature'), ('develop', 'feature')]

    def test_cached_parent_that_no_longer_exists_is_ignored(self) -> None:
        compare_refs = MockCompareRefs({
            ('main', 'feature'): (5, 0),
            ('develop', 'feature'): (2, 0),
        }, default=(1, 1))
        relationship_cache = RelationshipCache()
        relationship_cache.update('example-org', 'example-repo', {'feature': 'deleted-branch'})

        tree = analyze(create_branches('main', 'develop', 'feature'), compare_refs, relationship_cache)

        assert by_name(tree)['feature'].parent == 'develop'
        assert relationship_cache.get_relationships('example-org', 'example-repo')['feature'] == 'develop'

    def test_stale_cache_entry_is_ignored(self) -> None:
        now = [1000.0]
        compare_refs = MockCompareRefs({
            ('main', 'develop'): (3, 0),
            ('main', 'feature'): (5, 0),
        }, default=(1, 1))
        relationship_cache = RelationshipCache(ttl_seconds=60, clock=lambda: now[0])
        relationship_cache.update('example-org', 'example-repo', {'feature': 'develop'})
        now[0] += 61

        tree = analyze(create_branches('main', 'develop', 'feature'), compare_refs, relationship_cache)

        assert by_name(tree)['feature'].parent == 'main'

    def test_second_run_with_cache_gives_the_same_tree(self) -> None:
        compare_refs = MockCompareRefs({
            ('main', 'develop'): (3, 0),
            ('main', 'feature/a'): (5, 0),
            ('main', 'feature/b'): (4, 0),
            ('develop', 'feature/a'): (2, 0),
            ('develop', 'feature/b'): (1, 0),
        }, default=(1, 1))
        relationship_cache = RelationshipCache()
        branches = create_branches('main', 'develop', 'feature/a', 'feature/b')

        first = analyze(branches, compare_refs, relationship_cache)
        first_run_call_count = len(compare_refs.calls)
        second = analyze(branches, compare_refs, relationship_cache)

        assert second.relationships == first.relationships
        assert [b.to_json() for b in second.branches] == [b.to_json() for b in first.branches]
        assert len(compare_refs.calls) - first_run_call_count < first_run_call_count

    def test_depth_is_capped(self) -> None:
        names = ['b1', 'b2', 'b3', 'b4', 'b5', 'b6', 'b7']
        compare_refs = MockCompareRefs({}, default=(1, 0))
        relationship_cache = RelationshipCache()
        relationship_cache.update('example-org', 'example-repo',
                                  {'b1': 'main', **{child: parent for parent, child in zip(names, names[1:])}})

        tree = analyze(create_branches('main', *names), compare_refs, relationship_cache)
        branches = by_name(tree)

        assert [branches[name].depth for name in names] == [1, 2, 3, 4, 5, 5, 5]
        assert branches['b7'].parent == 'b6'

    def test_cached_cycle_terminates(self) -> None:
        compare_refs = MockCompareRefs({}, default=(1, 0))
        relationship_cache = RelationshipCache()
        relationship_cache.update('example-org', 'example-repo', {'a': 'b', 'b': 'a'})

        tree = analyze(create_branches('main', 'a', 'b'), compare_refs, relationship_cache)
        branches = by_name(tree)

        assert not tree.used_fallback
        assert branches['a'].parent == 'b'
        assert branches['b'].parent == 'a'
        assert branches['a'].depth == 2
        assert branches['b'].depth == 2

    def test_compute_depth(self) -> None:
        assert compute_depth('a', {'a': 'main'}, 'main') == 1
        assert compute_depth('b', {'a': 'main', 'b': 'a'}, 'main') == 2
        assert compute_depth('a', {}, 'main') == 1
        assert compute_depth('a', {'a': 'a'}, 'main') == 1
        assert compute_depth('a', {'a': 'b', 'b': 'c', 'c': 'a'}, 'main') == 3

    def test_comparisons_are_reused_within_a_pass(self) -> None:
        compare_refs = MockCompareRefs({
            ('main', 'develop'): (3, 0),
        }, default=(1, 1))

        analyze(create_branches('main', 'develop'), compare_refs)

        assert compare_refs.calls == [('main', 'develop')]

    def test_no_branches_besides_trunk(self) -> None:
        compare_refs = MockCompareRefs({})

        tree = analyze(create_branches('main'), compare_refs)

        assert not tree.used_fallback
        assert tree.connections == []
        assert tree.relationships == {}
        assert compare_refs.calls == []


class TestAnalyzerPhases(BaseTest):

    def test_detect_merged_branches(self) -> None:
        compare_refs = MockCompareRefs({
            ('main', 'merged'): (0, 3),
            ('main', 'identical'): (0, 0),
            ('main', 'active'): (2, 1),
        }, failing=[('main', 'broken')])
        context = ResolutionContext(create_branches('main', 'merged', 'identical', 'active', 'broken'), 'main',
                                    create_comparator(compare_refs))

        merged = detect_merged_branches(context)

        assert list(merged.keys()) == ['merged', 'identical']
        assert merged['merged'].merged_into == 'main'
        assert merged['merged'].ahead_by == 0

    def test_detect_merged_branches_with_every_comparison_failing(self) -> None:
        compare_refs = MockCompareRefs({})
        context = ResolutionContext(create_branches('main', 'a', 'b'), 'main', create_comparator(compare_refs))

        with pytest.raises(SystemicAnalysisException):
            detect_merged_branches(context)

    def test_detect_merged_branches_with_the_only_comparison_failing(self) -> None:
        compare_refs = MockCompareRefs({})
        context = ResolutionContext(create_branches('main', 'a'), 'main', create_comparator(compare_refs))

        assert detect_merged_branches(context) == {}

    def test_find_best_parent_defaults_to_trunk(self) -> None:
        compare_refs = MockCompareRefs({}, default=(2, 3))
        context = ResolutionContext(create_branches('main', 'a', 'b'), 'main', create_comparator(compare_refs))

        assert find_best_parent(context, 'a') == 'main'

    def test_fallback_heuristics(self) -> None:
        branches = create_branches('main', 'Feature/Upper', 'develop', 'feat/x', 'bugfix/y', 'hotfix/z', 'release/1.0')

        connections = apply_fallback_heuristics(branches, 'main')
        parents = {branch.name: branch.parent for branch in branches}
        depths = {branch.name: branch.depth for branch in branches}

        assert parents == {
            'main': None,
            'Feature/Upper': 'develop',
            'develop': 'main',
            'feat/x': 'develop',
            'bugfix/y': 'develop',
            'hotfix/z': 'develop',
            'release/1.0': 'main',
        }
        assert depths['feat/x'] == 2
        assert depths['release/1.0'] == 1
        assert depths['main'] == 0
        assert all(branch.ahead_by == 1 for branch in branches)
        assert BranchConnection(from_branch='feat/x', to_branch='develop') in connections
        assert len(connections) == 6

    def test_fallback_heuristics_without_develop(self) -> None:
        branches = create_branches('master', 'feature/a', 'fix/b')

        apply_fallback_heuristics(branches, 'master')

        assert [branch.parent for branch in branches] == [None, 'master', 'master']
        assert [branch.depth for branch in branches] == [0, 1, 1]

    def test_fallback_heuristics_picks_first_develop_like_branch(self) -> None:
        branches = create_branches('main', 'dev', 'development', 'feature/a')

        apply_fallback_heuristics(branches, 'main')

        assert branches[3].parent == 'dev'
        assert branches[2].parent == 'main'

    def test_analyze_branch_status(self) -> None:
        compare_refs = MockCompareRefs({('develop', 'feature'): (2, 1)}, failing=[('main', 'feature')])
        comparator = create_comparator(compare_refs)

        status = analyze_branch_status(comparator, 'feature', 'develop')
        assert (status.ahead_by, status.behind_by, status.status) == (2, 1, 'diverged')
        assert analyze_branch_status(comparator, 'feature', 'main') == UNKNOWN_COMPARE_RESULT

    def test_list_merged_branches(self) -> None:
        compare_refs = MockCompareRefs({
            ('main', 'merged'): (0, 4),
            ('main', 'active'): (1, 0),
        }, failing=[('main', 'broken')])

        merged = list_merged_branches(create_comparator(compare_refs), create_branches('main', 'merged', 'active', 'broken'), 'main')

        assert merged == ['merged']


def assert_consistent(tree: BranchTree, trunk: str = 'main') -> None:
    branches = by_name(tree)
    for branch in tree.branches:
        if branch.name == trunk:
            assert (branch.parent, branch.depth) == (None, 0)
            continue
        assert branch.parent is not None
        assert branch.parent == trunk or branch.parent in branches
        assert branch.depth == min(branches[branch.parent].depth + 1, 5)  # type: ignore[operator]
        assert branch.name in branches[branch.parent].children
        for child in branch.children:
            assert branches[child].parent == branch.name
    assert {(c.from_branch, c.to_branch) for c in tree.connections} == \
        {(b.name, b.parent) for b in tree.branches if b.name != trunk}


class TestAnalyzerInvariants(BaseTest):
    names = ['main', 'develop', 'feature/a', 'feature/a-1', 'feature/b', 'hotfix/c', 'old', 'release']
    results = {
        ('main', 'develop'): (3, 0),
        ('main', 'feature/a'): (5, 0),
        ('main', 'feature/a-1'): (6, 0),
        ('main', 'feature/b'): (4, 0),
        ('main', 'hotfix/c'): (1, 0),
        ('main', 'old'): (0, 7),
        ('main', 'release'): (2, 3),
        ('develop', 'feature/a'): (2, 0),
        ('develop', 'feature/a-1'): (3, 0),
        ('develop', 'feature/b'): (1, 0),
        ('feature/a', 'feature/a-1'): (1, 0),
    }

    def test_resolved_tree_is_consistent(self) -> None:
        tree = analyze(create_branches(*self.names), MockCompareRefs(self.results, default=(1, 1)))

        assert not tree.used_fallback
        assert by_name(tree)['feature/a-1'].parent == 'feature/a'
        assert by_name(tree)['feature/a-1'].depth == 3
        assert_consistent(tree)

    def test_tree_with_failing_comparisons_is_consistent(self) -> None:
        failing = [('develop', 'feature/a'), ('feature/a', 'feature/a-1'), ('main', 'release')]
        tree = analyze(create_branches(*self.names), MockCompareRefs(self.results, default=(1, 1), failing=failing))

        assert not tree.used_fallback
        assert_consistent(tree)

    def test_fallback_tree_is_consistent(self) -> None:
        tree = analyze(create_branches(*self.names), MockCompareRefs({}))

        assert tree.used_fallback
        assert_consistent(tree)
