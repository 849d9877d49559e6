#!/usr/bin/env python3

import argparse
import os
import sys
import textwrap
from typing import Any, List, Optional, Sequence, Union

import gitvis.options
from gitvis import __version__, config_keys, utils

from .client import GitVisClient
from .docs import long_docs, short_docs
from .exceptions import ExitCode, GitVisException
from .github import DEFAULT_GITHUB_DOMAIN, GitHubClient, OrganizationAndRepository
from .relationship_cache import get_default_cache_file_path
from .utils import bold, fmt, underline

commands: List[str] = ["tree", "compare", "forget", "create-branch", "create-pr", "config", "help", "version"]


def get_help_description(command: Optional[str] = None) -> str:
    usage_str = ''
    if command in long_docs:
        usage_str += fmt(textwrap.dedent(long_docs[command]))
    else:
        usage_str += get_short_general_usage() + '\n\n'
        usage_str += underline('Commands') + '\n\n'
        for cm in commands:
            usage_str += f'    {bold(cm): <{18 if utils.ascii_only else 27}}{short_docs[cm]}\n'
        usage_str += fmt(textwrap.dedent("""
            <u>General options</u>\n
                <b>--debug</b>           Log detailed diagnostic info, including the API requests made.
                <b>-h, --help</b>        Print help and exit.
                <b>-v, --verbose</b>     Log the API requests made.
                <b>--version</b>         Print version and exit.
        """[1:]))
    return usage_str


def get_short_general_usage() -> str:
    return fmt("<b>Usage: gitvis [--debug] [-h] [-v|--verbose] [--version] "
               "<command> [command-specific options] [command-specific arguments]</b>")


def version() -> None:
    print(f"gitvis version {__version__}")


class GitVisHelpAction(argparse.Action):
    def __init__(  # noqa: KW101
            self,
            option_strings: str,
            dest: str = argparse.SUPPRESS,
            default: Any = argparse.SUPPRESS,
            help: Optional[str] = None
    ) -> None:
        super(GitVisHelpAction, self).__init__(
            option_strings=option_strings,
            dest=dest,
            default=default,
            nargs=0,
            help=help)

    def __call__(  # noqa: KW101
            self,
            parser: argparse.ArgumentParser,
            namespace: argparse.Namespace,  # noqa: F841, U100
            values: Union[str, Sequence[Any], None],  # noqa: U100
            option_string: Optional[str] = None  # noqa: F841, U100
    ) -> None:
        # parser name (prog) is expected to be `gitvis` or `gitvis <command>`
        command_name = parser.prog.replace('gitvis', '').strip()
        print(get_help_description(command=command_name))
        parser.exit(status=ExitCode.SUCCESS)


def create_cli_parser() -> argparse.ArgumentParser:
    common_args_parser = argparse.ArgumentParser(
        prog='gitvis',
        argument_default=argparse.SUPPRESS,
        add_help=False)
    common_args_parser.add_argument('--debug', action='store_true')
    common_args_parser.add_argument('-h', '--help', action=GitVisHelpAction)
    common_args_parser.add_argument('--version', action='version', version=f'gitvis version {__version__}')
    common_args_parser.add_argument('-v', '--verbose', action='store_true')

    cli_parser = argparse.ArgumentParser(
        prog='gitvis',
        argument_default=argparse.SUPPRESS,
        add_help=False,
        parents=[common_args_parser])

    subparsers = cli_parser.add_subparsers(dest='command')

    def create_subparser(command: str) -> argparse.ArgumentParser:
        return subparsers.add_parser(
            command,
            argument_default=argparse.SUPPRESS,
            usage=argparse.SUPPRESS,
            add_help=False,
            parents=[common_args_parser])

    compare_parser = create_subparser('compare')
    compare_parser.add_argument('repository')
    compare_parser.add_argument('base')
    compare_parser.add_argument('head')

    create_subparser('config')

    create_branch_parser = create_subparser('create-branch')
    create_branch_parser.add_argument('repository')
    create_branch_parser.add_argument('name')
    create_branch_parser.add_argument('-f', '--from', dest='from_branch')

    create_pr_parser = create_subparser('create-pr')
    create_pr_parser.add_argument('repository')
    create_pr_parser.add_argument('head')
    create_pr_parser.add_argument('base')
    create_pr_parser.add_argument('--body')
    create_pr_parser.add_argument('--draft', action='store_true')
    create_pr_parser.add_argument('--title')

    forget_parser = create_subparser('forget')
    forget_parser.add_argument('repository')

    help_parser = create_subparser('help')
    help_parser.add_argument('topic_or_cmd', nargs='?', choices=commands, default=None)

    tree_parser = create_subparser('tree')
    tree_parser.add_argument('repository')
    tree_parser.add_argument('-b', '--default-branch')
    tree_parser.add_argument('--json', action='store_true')
    tree_parser.add_argument('-l', '--list-commits', action='store_true')
    tree_parser.add_argument('--no-cache', action='store_true')

    create_subparser('version')

    return cli_parser


def _get_int_from_environment_or_none(key: str) -> Optional[int]:
    value = os.environ.get(key)
    if value is None or value == '':
        return None
    try:
        parsed = int(value)
    except ValueError:
        raise GitVisException(f"Invalid value for `{key}` environment variable: `{value}`. A non-negative integer is expected.")
    if parsed < 0:
        raise GitVisException(f"Invalid value for `{key}` environment variable: `{value}`. A non-negative integer is expected.")
    return parsed


def update_cli_options_using_environment(cli_opts: gitvis.options.CommandLineOptions) -> None:
    cli_opts.opt_github_domain = os.environ.get(config_keys.GITHUB_DOMAIN) or None
    cli_opts.opt_cache_file = os.environ.get(config_keys.CACHE_FILE) or None

    compare_delay_ms = _get_int_from_environment_or_none(config_keys.COMPARE_DELAY_MS)
    if compare_delay_ms is not None:
        cli_opts.opt_compare_delay_ms = compare_delay_ms

    relationship_cache_ttl = _get_int_from_environment_or_none(config_keys.RELATIONSHIP_CACHE_TTL)
    if relationship_cache_ttl is not None:
        cli_opts.opt_relationship_cache_ttl = relationship_cache_ttl


def update_cli_options_using_parsed_args(
        cli_opts: gitvis.options.CommandLineOptions,
        parsed_args: argparse.Namespace) -> None:
    for opt, arg in vars(parsed_args).items():
        # --debug and --verbose are handled outside this method
        if opt == "body":
            cli_opts.opt_body = arg
        elif opt == "default_branch":
            cli_opts.opt_default_branch = arg
        elif opt == "draft":
            cli_opts.opt_draft = True
        elif opt == "from_branch":
            cli_opts.opt_from = arg
        elif opt == "json":
            cli_opts.opt_json = True
        elif opt == "list_commits":
            cli_opts.opt_list_commits = True
        elif opt == "no_cache":
            cli_opts.opt_no_cache = True
        elif opt == "title":
            cli_opts.opt_title = arg


def set_utils_global_variables(parsed_args: argparse.Namespace) -> None:
    args = vars(parsed_args)
    utils.ascii_only = not sys.stdout.isatty()
    utils.debug_mode = "debug" in args
    utils.verbose_mode = "verbose" in args


def create_client(cli_opts: gitvis.options.CommandLineOptions, repository: str) -> GitVisClient:
    domain = cli_opts.opt_github_domain or DEFAULT_GITHUB_DOMAIN
    org_and_repo = OrganizationAndRepository.parse(domain, repository)
    github_client = GitHubClient(organization=org_and_repo.organization, repository=org_and_repo.repository, domain=domain)
    cache_file_path = None if cli_opts.opt_no_cache else (cli_opts.opt_cache_file or get_default_cache_file_path())
    return GitVisClient(
        github_client=github_client,
        compare_delay_ms=cli_opts.opt_compare_delay_ms,
        cache_file_path=cache_file_path,
        relationship_cache_ttl=cli_opts.opt_relationship_cache_ttl)


def launch(orig_args: List[str]) -> None:
    cli_opts = gitvis.options.CommandLineOptions()
    cli_parser: argparse.ArgumentParser = create_cli_parser()
    parsed_cli: argparse.Namespace = cli_parser.parse_args(orig_args)

    set_utils_global_variables(parsed_cli)
    update_cli_options_using_environment(cli_opts)
    update_cli_options_using_parsed_args(cli_opts, parsed_cli)

    cmd = parsed_cli.command
    if not cmd:
        print(get_help_description())
        sys.exit(ExitCode.ARGUMENT_ERROR)

    if cmd == "help":
        print(get_help_description(command=parsed_cli.topic_or_cmd))
        return
    elif cmd == "config":
        print(get_help_description(command="config"))
        return
    elif cmd == "version":
        version()
        return

    client = create_client(cli_opts, parsed_cli.repository)
    if cmd == "tree":
        client.tree(default_branch=cli_opts.opt_default_branch, opt_json=cli_opts.opt_json, opt_list_commits=cli_opts.opt_list_commits)
    elif cmd == "compare":
        client.compare(parsed_cli.base, parsed_cli.head)
    elif cmd == "forget":
        client.forget()
    elif cmd == "create-branch":
        client.create_branch(parsed_cli.name, opt_from=cli_opts.opt_from)
    elif cmd == "create-pr":
        client.create_pull_request(
            parsed_cli.head, parsed_cli.base,
            opt_title=cli_opts.opt_title, opt_body=cli_opts.opt_body, opt_draft=cli_opts.opt_draft)
    else:  # an unknown command is handled by argparse
        raise GitVisException(f"Unknown command: `{cmd}`")


def main() -> None:
    try:
        launch(sys.argv[1:])
    except EOFError:  # pragma: no cover
        sys.exit(ExitCode.END_OF_FILE_SIGNAL)
    except KeyboardInterrupt:  # pragma: no cover
        sys.exit(ExitCode.KEYBOARD_INTERRUPT)
    except GitVisException as e:
        print(e, file=sys.stderr)
        sys.exit(ExitCode.GITVIS_EXCEPTION)


if __name__ == "__main__":
    main()
