from typing import Dict

from gitvis import config_keys
from gitvis.constants import (COMMITS_PER_BRANCH_COUNT, DEFAULT_COMPARE_DELAY_MS,
                              DEFAULT_RELATIONSHIP_CACHE_TTL_SECONDS)

short_docs: Dict[str, str] = {
    "compare": "Display how many commits one branch is ahead of and behind another",
    "config": "Display docs for the environment variables that gitvis reads",
    "create-branch": "Create a branch at the tip of another branch",
    "create-pr": "Create a pull request between two branches",
    "forget": "Drop the remembered branch relationships of a repository",
    "help": "Display this overview, or detailed help for a specified command",
    "tree": "Infer and display the tree of branch dependencies of a GitHub repository",
    "version": "Display the version and exit",
}

long_docs: Dict[str, str] = {
    "compare": """
        <b>Usage:</b><b>
           gitvis compare <repository> <base> <head></b>

        Compares <head> against <base> (as in three-dot `<base>...<head>` comparison on GitHub)
        and displays the number of commits <head> is ahead of and behind <base>.
   """,
    "config": f"""
        <b>Environment variables:</b>
           <b>{config_keys.GITHUB_TOKEN}</b>
              GitHub API token. If not set, the token is looked up in `~/.github-token`
              (either a single token, or `<token> <domain>` lines) and then via `gh auth token`.

           <b>{config_keys.GITHUB_DOMAIN}</b>
              Domain of a GitHub Enterprise instance. Defaults to `github.com`.

           <b>{config_keys.CACHE_FILE}</b>
              Path of the file that remembers inferred branch relationships between runs.
              Defaults to `$XDG_CACHE_HOME/gitvis/relationships.json` (or `~/.cache/gitvis/relationships.json`).

           <b>{config_keys.RELATIONSHIP_CACHE_TTL}</b>
              Number of seconds after which remembered branch relationships are no longer used.
              Defaults to {DEFAULT_RELATIONSHIP_CACHE_TTL_SECONDS}.

           <b>{config_keys.COMPARE_DELAY_MS}</b>
              Minimum number of milliseconds between two consecutive branch comparisons.
              Defaults to {DEFAULT_COMPARE_DELAY_MS}.
   """,
    "create-branch": """
        <b>Usage:</b><b>
           gitvis create-branch <repository> <name> [-f|--from=<branch>]</b>

        Creates branch <name> in the GitHub repository, pointing at the tip commit of <branch>
        (the default branch of the repository, if not specified).

        <b>Options:</b>
           <b>-f</b>, <b>--from=<branch></b>
              Branch whose tip the new branch should point at.
   """,
    "create-pr": """
        <b>Usage:</b><b>
           gitvis create-pr <repository> <head> <base> [--title=<title>] [--body=<body>] [--draft]</b>

        Creates a pull request from <head> into <base>.

        <b>Options:</b>
           <b>--title=<title></b>
              Title of the pull request. Defaults to <head>.
           <b>--body=<body></b>
              Description of the pull request.
           <b>--draft</b>
              Create the pull request as a draft.
   """,
    "forget": """
        <b>Usage:</b><b>
           gitvis forget <repository></b>

        Drops the branch relationships remembered for <repository>,
        so that the next `gitvis tree` infers all of them from scratch.
   """,
    "help": """
        <b>Usage:</b><b>
           gitvis help [<command>]</b>

        Prints a summary of this tool, or a detailed info on a command if defined.
   """,
    "tree": f"""
        <b>Usage:</b><b>
           gitvis tree <repository> [-b|--default-branch=<branch>] [-l|--list-commits] [--no-cache] [--json]</b>

        Infers which branch each branch of the GitHub <repository> was forked off, and displays the resulting tree.
        <repository> is either `<owner>/<repo>` or a GitHub remote URL.

        Git does not record the parent of a branch, so it's inferred by comparing branches pairwise:
           * a branch that has no commits of its own relative to the default branch is considered merged,
           * the parent of a branch is the non-merged branch it is ahead of by the fewest commits (and not behind at all),
           * a branch fully contained in another branch is attached to that branch,
           * if no such branch exists, the default branch is the parent.

        Inferred relationships are remembered and reused on subsequent runs, as long as the remembered parent still exists.
        If the comparisons fail altogether (e.g. due to the API rate limit), the tree is guessed from branch names:
        `feature/*` and `bugfix/*` branches go under `develop` (if present), and everything else under the default branch.

        <b>Options:</b>
           <b>-b</b>, <b>--default-branch=<branch></b>
              Branch to use as the root of the tree. Defaults to the default branch of the repository.
           <b>-l</b>, <b>--list-commits</b>
              Additionally list the recent commits of each branch that are not in its parent, and count them per connection.
              Only the {COMMITS_PER_BRANCH_COUNT} most recent commits of each branch are considered.
           <b>--no-cache</b>
              Neither use nor update the remembered branch relationships.
           <b>--json</b>
              Print branches, connections and relationships as JSON instead.
   """,
    "version": """
        <b>Usage:</b><b>
           gitvis version</b>

        Prints the version and exits.
   """,
}
