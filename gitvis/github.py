import http
import json
import os
import re
import shutil
import urllib.error
import urllib.parse
# Deliberately NOT using much more convenient `requests` to avoid external dependencies in production code
import urllib.request
from typing import Any, Dict, List, NamedTuple, Optional

from gitvis import config_keys
from gitvis.branch import Branch, Commit, CompareResult
from gitvis.constants import COMMITS_PER_BRANCH_COUNT
from gitvis.exceptions import (GitHubApiException, GitVisException,
                               RateLimitExceededException,
                               UnexpectedGitVisException)
from gitvis.utils import compact_dict, debug, popen_cmd, verbose

DEFAULT_GITHUB_DOMAIN = "github.com"


class GitHubToken(NamedTuple):
    value: str
    provider: str

    @classmethod
    def for_domain(cls, domain: str) -> Optional["GitHubToken"]:
        return (cls.__get_token_from_env() or
                cls.__get_token_from_file_in_home_directory(domain) or
                cls.__get_token_from_gh(domain))

    @classmethod
    def __get_token_from_env(cls) -> Optional["GitHubToken"]:
        debug(f"1. Trying to find token in `{config_keys.GITHUB_TOKEN}` environment variable...")
        github_token = os.environ.get(config_keys.GITHUB_TOKEN)
        if github_token:
            return cls(value=github_token,
                       provider=f'`{config_keys.GITHUB_TOKEN}` environment variable')
        return None

    @classmethod
    def __get_token_from_file_in_home_directory(cls, domain: str) -> Optional["GitHubToken"]:
        debug("2. Trying to find token in `~/.github-token`...")
        required_file_name = '.github-token'
        provider = f'auth token for {domain} from `~/.github-token`'
        file_full_path = os.path.expanduser(f'~/{required_file_name}')

        if os.path.isfile(file_full_path):
            debug(f"  File `{file_full_path}` exists")
            with open(file_full_path) as file:
                # ~/.github-token is a file with a structure similar to:
                #
                # ghp_mytoken_for_github_com
                # ghp_myothertoken_for_git_example_org git.example.org
                # ghp_yetanothertoken_for_git_example_com git.example.com

                for line in file.readlines():
                    if line.rstrip().endswith(" " + domain):
                        token = line.split(" ")[0]
                        return cls(value=token, provider=provider)
                    elif domain == DEFAULT_GITHUB_DOMAIN and line.strip() and " " not in line.rstrip():
                        return cls(value=line.rstrip(), provider=provider)
        return None

    @classmethod
    def __get_token_from_gh(cls, domain: str) -> Optional["GitHubToken"]:
        debug("3. Trying to find token via `gh` GitHub CLI...")
        # Abort without error if `gh` isn't available
        gh = shutil.which('gh')
        if not gh:
            return None

        gh_token_returncode, gh_token_stdout, _ = \
            popen_cmd(gh, "auth", "token", "--hostname", domain, hide_debug_output=True)
        if gh_token_returncode != 0:
            return None
        if gh_token_stdout.strip():
            return cls(value=gh_token_stdout.strip(), provider=f'auth token for {domain} from `gh` GitHub CLI')
        return None


class OrganizationAndRepository(NamedTuple):
    organization: str
    repository: str

    def __str__(self) -> str:
        return f"{self.organization}/{self.repository}"

    @classmethod
    def from_url(cls, domain: str, url: str) -> Optional["OrganizationAndRepository"]:
        url = url if url.endswith('.git') else url + '.git'
        for pattern in remote_url_patterns(domain):
            match = re.match(pattern, url)
            if match:
                org = match.group(1)
                repo = match.group(2)
                return cls(organization=org, repository=repo if repo[-4:] != '.git' else repo[:-4])
        return None

    @classmethod
    def parse(cls, domain: str, repository: str) -> "OrganizationAndRepository":
        """Accepts either `owner/repo` or any form of a GitHub remote URL."""
        org_and_repo = cls.from_url(domain, repository)
        if org_and_repo:
            return org_and_repo
        match = re.match(r"^([\w.-]+)/([\w.-]+?)(?:\.git)?$", repository)
        if match:
            return cls(organization=match.group(1), repository=match.group(2))
        raise GitVisException(f"Could not parse `{repository}` as a repository. Use `<owner>/<repo>` or a GitHub remote URL.")


def remote_url_patterns(domain: str) -> List[str]:
    # GitHub doesn't allow trailing `.git` suffix in the repository name (also applies to multiple repetitions e.g. `repo_name.git.git`)
    domain_regex = re.escape(domain)
    org_repo_regex = "([^/]+)/([^/]+)"
    return [
        # (?:...) is a non-capturing group
        f"^https://(?:.+@)?{domain_regex}/{org_repo_regex}$",
        # A very rare way to express SSH URL
        f"^ssh://.+@{domain_regex}/{org_repo_regex}$",
        # The below is way more common for SSH; the user before `@` is typically called `git`, but doesn't need to be so
        f"^[^:/]+@{domain_regex}:{org_repo_regex}$",
    ]


class PullRequest(NamedTuple):
    number: int
    title: str
    head: str
    base: str
    draft: bool
    html_url: str

    def __repr__(self) -> str:
        return f"PR #{self.number}: {self.head} -> {self.base}"


class GitHubClient:
    # As of Dec 2022, GitHub API never returns more than 100 items per page, even if per_page query param is above 100.
    MAX_ITEMS_PER_PAGE_COUNT = 100

    def __init__(self, organization: str, repository: str, domain: str = DEFAULT_GITHUB_DOMAIN,
                 extra_headers: Optional[Dict[str, str]] = None, token: Optional[GitHubToken] = None) -> None:
        self.domain: str = domain
        self.organization: str = organization
        self.repository: str = repository
        # Forwarded verbatim to every request, on top of (and overriding) the default headers.
        self.__extra_headers: Dict[str, str] = dict(extra_headers or {})
        self.__token: Optional[GitHubToken] = token if token is not None else GitHubToken.for_domain(domain)

    def get_org_and_repo(self) -> OrganizationAndRepository:
        return OrganizationAndRepository(self.organization, self.repository)

    def __get_url_prefix(self) -> str:
        if self.domain == DEFAULT_GITHUB_DOMAIN:
            return 'https://api.' + self.domain
        else:
            return 'https://' + self.domain + '/api/v3'

    def __fire_github_api_request(self, method: str, path: str, request_body: Optional[Dict[str, Any]] = None,
                                  paginate: bool = True) -> Any:
        headers: Dict[str, str] = {
            'Content-Type': 'application/json',
            'User-Agent': 'gitvis',
            'Accept': 'application/vnd.github.v3+json'
        }
        if self.__token:
            headers['Authorization'] = 'Bearer ' + self.__token.value
        headers.update(self.__extra_headers)

        url_prefix = self.__get_url_prefix()
        url = url_prefix + path
        json_body: Optional[str] = json.dumps(request_body) if request_body else None
        http_request = urllib.request.Request(url, headers=headers, data=json_body.encode() if json_body else None, method=method.upper())
        verbose(f"{method.upper()} {url}")
        debug(f'firing a {method} request to {url} with {"a" if self.__token else "no"} '
              f'bearer token and request body {compact_dict(request_body) if request_body else "<none>"}')

        try:
            with urllib.request.urlopen(http_request) as response:
                parsed_response_body: Any = json.loads(response.read().decode())
                # https://docs.github.com/en/rest/guides/using-pagination-in-the-rest-api?apiVersion=2022-11-28#using-link-headers
                link_header: str = response.info()["link"]
                # Only list responses can be concatenated; for other ones (like compare), `Link` paginates a nested array.
                if link_header and paginate:
                    url_prefix_regex = re.escape(url_prefix)
                    match = re.search(f'<{url_prefix_regex}(/[^>]+)>; rel="next"', link_header)
                    if match:
                        next_page_path = match.group(1)
                        debug(f'link header is present in the response, and there is more data to retrieve under {next_page_path}')
                        return parsed_response_body + self.__fire_github_api_request(method, next_page_path, request_body, paginate)
                    else:
                        debug('link header is present in the response, but there is no more data to retrieve')
                return parsed_response_body
        except urllib.error.HTTPError as err:
            rate_limit_remaining = err.headers.get('X-RateLimit-Remaining') if err.headers else None
            if err.code in (http.HTTPStatus.FORBIDDEN, http.HTTPStatus.TOO_MANY_REQUESTS) and rate_limit_remaining == '0':
                reset = err.headers.get('X-RateLimit-Reset')
                raise RateLimitExceededException(
                    f'GitHub API rate limit exceeded (`{err.code}` HTTP status for `{method.upper()} {url}`).\n' +
                    (f'The limit resets at unix time {reset}. ' if reset else '') +
                    'Try again later or provide a GitHub API token to get a higher limit.', status=err.code)
            elif err.code == http.HTTPStatus.UNPROCESSABLE_ENTITY:
                error_response = json.loads(err.read().decode())
                error_reason: str = self.__extract_failure_info_from_422(error_response)
                raise GitHubApiException(
                    f'GitHub API returned 422 (Unprocessable Entity) HTTP status with error message: `{error_reason}`.', status=err.code)
            elif err.code in (http.HTTPStatus.UNAUTHORIZED, http.HTTPStatus.FORBIDDEN):
                first_line = f'GitHub API returned `{err.code}` HTTP status with error message: `{err.reason}`\n'
                if self.__token:
                    raise GitHubApiException(
                        first_line + f'Make sure that the GitHub API token provided by {self.__token.provider} '
                        f'is valid and allows for access to `{method.upper()}` `{url_prefix}{path}`.', status=err.code)
                else:
                    raise GitHubApiException(
                        first_line + 'You might not have the required permissions for this repository.\n'
                                     f'Provide a GitHub API token with `repo` access via `{config_keys.GITHUB_TOKEN}` environment variable.\n'
                                     f'Visit `https://{self.domain}/settings/tokens` to generate a new one.', status=err.code)
            elif err.code == http.HTTPStatus.NOT_FOUND:
                raise GitHubApiException(
                    f'`{method} {url}` request ended up in 404 response from GitHub. '
                    'Either the resource does not exist or a valid GitHub API token is required.', status=err.code)
            elif err.code >= 500:
                raise GitHubApiException(f'GitHub API returned `{err.code}` '
                                         f'HTTP status with error message: `{err.reason}`.', status=err.code)  # pragma: no cover
            else:
                raise UnexpectedGitVisException(f'GitHub API returned `{err.code}` HTTP status with error message: `{err.reason}`.')
        except OSError as e:  # pragma: no cover
            raise GitHubApiException(f'Could not connect to {url_prefix}: {e}')

    def __fire_github_api_repo_request(self, method: str, path_suffix: str, request_body: Optional[Dict[str, Any]] = None,
                                       paginate: bool = True) -> Any:
        path = f'/repos/{self.organization}/{self.repository}{path_suffix}'
        return self.__fire_github_api_request(method=method, path=path, request_body=request_body, paginate=paginate)

    @staticmethod
    def __extract_failure_info_from_422(response: Any) -> str:
        if response['message'] != 'Validation Failed':
            return str(response['message'])
        ret: List[str] = []
        if response.get('errors'):
            for error in response['errors']:
                if error.get('message'):
                    ret.append(error['message'])
                else:
                    ret.append(str(error))
        if ret:
            return '\n'.join(ret)
        else:
            return str(response)

    @staticmethod
    def __quote_ref(ref: str) -> str:
        return urllib.parse.quote(ref, safe='/')

    def compare(self, base: str, head: str) -> CompareResult:
        # Three-dot comparison: commits reachable from head, but not from base (and the other way round for behind_by).
        # Only the counts are needed, so a single listed commit is enough, and further pages of commits are never fetched.
        path_suffix = f'/compare/{self.__quote_ref(base)}...{self.__quote_ref(head)}?per_page=1'
        compare_json = self.__fire_github_api_repo_request(method='GET', path_suffix=path_suffix, paginate=False)
        return CompareResult.from_json(compare_json)

    def get_repository_info(self) -> Dict[str, Any]:
        return self.__fire_github_api_repo_request(method='GET', path_suffix='')  # type: ignore[no-any-return]

    def get_default_branch(self) -> str:
        return str(self.get_repository_info()['default_branch'])

    def get_branches(self) -> List[Branch]:
        branches = self.__fire_github_api_repo_request(method='GET', path_suffix=f'/branches?per_page={self.MAX_ITEMS_PER_PAGE_COUNT}')
        return [Branch.from_json(branch) for branch in branches]

    def get_branch(self, name: str) -> Branch:
        return Branch.from_json(self.__fire_github_api_repo_request(method='GET', path_suffix=f'/branches/{self.__quote_ref(name)}'))

    def get_commits(self, branch: str, per_page: int = COMMITS_PER_BRANCH_COUNT) -> List[Commit]:
        """Returns at most `per_page` most recent commits reachable from `branch`, newest first."""
        path_suffix = f'/commits?sha={self.__quote_ref(branch)}&per_page={min(per_page, self.MAX_ITEMS_PER_PAGE_COUNT)}'
        commits = self.__fire_github_api_repo_request(method='GET', path_suffix=path_suffix, paginate=False)
        return [Commit.from_json(commit) for commit in commits]

    def create_branch(self, name: str, sha: str) -> None:
        request_body: Dict[str, str] = {
            'ref': f'refs/heads/{name}',
            'sha': sha
        }
        self.__fire_github_api_repo_request(method='POST', path_suffix='/git/refs', request_body=request_body)

    def create_pull_request(self, head: str, base: str, title: str, description: str, draft: bool) -> PullRequest:
        request_body: Dict[str, Any] = {
            'head': head,
            'base': base,
            'title': title,
            'body': description,
            'draft': draft
        }
        pr = self.__fire_github_api_repo_request(method='POST', path_suffix='/pulls', request_body=request_body)
        return PullRequest(
            number=int(pr['number']),
            title=pr['title'],
            head=pr['head']['ref'],
            base=pr['base']['ref'],
            draft=bool(pr.get('draft', False)),
            html_url=pr['html_url'])
