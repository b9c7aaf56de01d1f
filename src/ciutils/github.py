"""GitHub Actions specific helpers.

See https://docs.github.com/en/actions/learn-github-actions/variables for the
variables read here.
"""

import asyncio
import json
import re
import typing as t
from pathlib import Path

import ciutils.logger as logger
from ciutils.ci import is_inside_github_action
from ciutils.env import CIDetectionOptions, get_env
from ciutils.exceptions import (
    EventPayloadReadError,
    MissingEventNameError,
    MissingEventPathError,
    MissingTokenError,
    NotInCIError,
)
from ciutils.types.outcome import Err, Ok, Outcome

__all__ = [
    "GithubRepository",
    "get_github_token",
    "get_github_event_name",
    "get_github_repository",
    "get_github_run_id",
    "get_github_run_attempt",
    "get_github_workflow",
    "get_github_job",
    "get_github_actor",
    "get_github_ref",
    "get_github_ref_name",
    "get_github_sha",
    "get_github_event_path",
    "get_github_workspace",
    "get_github_event_payload",
    "get_github_event_payload_sync",
    "get_github_event_payload_safe",
    "get_github_event_payload_auto",
    "create_payload_getter",
    "is_event_type",
    "is_github_pull_request",
    "get_github_pull_request_number",
    "is_github_debug",
    "get_github_api_url",
    "get_github_server_url",
]

PULL_REQUEST_EVENTS = ("pull_request", "pull_request_target")
DEFAULT_API_URL = "https://api.github.com"
DEFAULT_SERVER_URL = "https://github.com"

_PULL_REQUEST_REF = re.compile(r"refs/pull/(\d+)/merge")

Payload = t.Dict[str, t.Any]


class GithubRepository(t.NamedTuple):
    """The owner and name of a GitHub repository."""

    owner: str
    repo: str

    def __str__(self) -> str:
        return f"{self.owner}/{self.repo}"


def get_github_token(options: t.Optional[CIDetectionOptions] = None) -> str:
    """Get the GitHub token from the environment.

    By default the process must be running inside GitHub Actions. Pass options
    with strict=False to skip that check.

    Raises:
        NotInCIError: If not running inside GitHub Actions in strict mode.
        MissingTokenError: If neither GITHUB_TOKEN nor GH_TOKEN is set.
    """
    skip_ci_check = options is not None and options.strict is False
    if not skip_ci_check and not is_inside_github_action(options):
        raise NotInCIError("Not running inside GitHub Actions")
    env = get_env(options)
    token = env.get("GITHUB_TOKEN") or env.get("GH_TOKEN")
    if not token:
        raise MissingTokenError(
            "GitHub token not found in environment (GITHUB_TOKEN or GH_TOKEN)"
        )
    return token


def _getter(
    name: str, doc: str
) -> t.Callable[[t.Optional[CIDetectionOptions]], t.Optional[str]]:
    def _get(options: t.Optional[CIDetectionOptions] = None) -> t.Optional[str]:
        return get_env(options).get(name)

    _get.__doc__ = doc
    return _get


get_github_event_name = _getter(
    "GITHUB_EVENT_NAME", "Get the event that triggered the workflow (push, pull_request, etc.)"
)
get_github_run_id = _getter("GITHUB_RUN_ID", "Get the unique id of the workflow run.")
get_github_run_attempt = _getter(
    "GITHUB_RUN_ATTEMPT", "Get the attempt number of the workflow run."
)
get_github_workflow = _getter("GITHUB_WORKFLOW", "Get the workflow name.")
get_github_job = _getter("GITHUB_JOB", "Get the job id.")
get_github_actor = _getter(
    "GITHUB_ACTOR", "Get the user who triggered the workflow."
)
get_github_ref = _getter(
    "GITHUB_REF", "Get the fully formed ref (branch or tag) that triggered the workflow."
)
get_github_ref_name = _getter(
    "GITHUB_REF_NAME", "Get the short ref name without refs/heads/ or refs/tags/."
)
get_github_sha = _getter("GITHUB_SHA", "Get the commit SHA that triggered the workflow.")
get_github_event_path = _getter(
    "GITHUB_EVENT_PATH", "Get the path to the event payload JSON file."
)
get_github_workspace = _getter(
    "GITHUB_WORKSPACE", "Get the directory the repository is checked out to."
)


def get_github_repository(
    options: t.Optional[CIDetectionOptions] = None,
) -> t.Optional[GithubRepository]:
    """Get the repository owner and name, or None if unset or malformed."""
    full_repo = get_env(options).get("GITHUB_REPOSITORY")
    if not full_repo:
        return None
    owner, _, repo = full_repo.partition("/")
    if not owner or not repo or "/" in repo:
        return None
    return GithubRepository(owner, repo)


def _read_payload(path: str) -> Payload:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise EventPayloadReadError(f"Could not read event payload at {path}: {e}") from e


def get_github_event_payload_safe(
    options: t.Optional[CIDetectionOptions] = None,
    *,
    event_name: t.Optional[str] = None,
) -> Outcome[Payload, Exception]:
    """Read and parse the event payload, reporting why it is unavailable.

    Args:
        options: Detection options supplying the environment.
        event_name: The event the payload belongs to. Defaults to GITHUB_EVENT_NAME.

    Returns:
        Ok with the parsed payload, or Err with a MissingEventPathError,
        MissingEventNameError or EventPayloadReadError.
    """
    path = get_github_event_path(options)
    if not path:
        return Err(MissingEventPathError("GITHUB_EVENT_PATH not set"))
    if not (event_name or get_github_event_name(options)):
        return Err(
            MissingEventNameError(
                "GITHUB_EVENT_NAME not set and no event name provided"
            )
        )
    return Ok(path).map(_read_payload)


def get_github_event_payload_sync(
    options: t.Optional[CIDetectionOptions] = None,
    *,
    event_name: t.Optional[str] = None,
) -> t.Optional[Payload]:
    """Read and parse the event payload.

    Returns:
        The parsed payload, or None if the path or event name is unset, or the file
        is unreadable or not JSON.
    """
    outcome = get_github_event_payload_safe(options, event_name=event_name)
    if outcome.is_err():
        logger.debug("Event payload unavailable: %s", outcome.unwrap_err())
    return outcome.unwrap_or(None)


async def get_github_event_payload(
    options: t.Optional[CIDetectionOptions] = None,
    *,
    event_name: t.Optional[str] = None,
) -> t.Optional[Payload]:
    """Read and parse the event payload without blocking the event loop."""
    return await asyncio.to_thread(
        get_github_event_payload_sync, options, event_name=event_name
    )


def get_github_event_payload_auto(
    options: t.Optional[CIDetectionOptions] = None,
) -> t.Optional[Payload]:
    """Read the payload of whichever event GITHUB_EVENT_NAME names.

    Returns None when GITHUB_EVENT_NAME is unset, even if a payload file exists.
    """
    event_name = get_github_event_name(options)
    if not event_name:
        return None
    return get_github_event_payload_sync(options, event_name=event_name)


def create_payload_getter(
    event_name: str,
) -> t.Callable[[t.Optional[CIDetectionOptions]], t.Optional[Payload]]:
    """Create a payload reader bound to one event.

    Example:
        >>> get_pull_request_payload = create_payload_getter("pull_request")
        >>> payload = get_pull_request_payload()
    """

    def _get(options: t.Optional[CIDetectionOptions] = None) -> t.Optional[Payload]:
        return get_github_event_payload_sync(options, event_name=event_name)

    _get.__name__ = f"get_{event_name}_payload"
    _get.__doc__ = f"Read the {event_name} event payload."
    return _get


def is_event_type(event_name: t.Optional[str], expected: str) -> bool:
    """Check whether an event name matches the expected event."""
    return event_name is not None and event_name == expected


def is_github_pull_request(options: t.Optional[CIDetectionOptions] = None) -> bool:
    """Check whether the workflow was triggered by a pull request event."""
    return get_github_event_name(options) in PULL_REQUEST_EVENTS


def get_github_pull_request_number(
    options: t.Optional[CIDetectionOptions] = None,
) -> t.Optional[int]:
    """Get the pull request number from the merge ref, or None outside a PR."""
    if not is_github_pull_request(options):
        return None
    ref = get_github_ref(options) or ""
    if match := _PULL_REQUEST_REF.search(ref):
        return int(match.group(1))
    return None


def is_github_debug(options: t.Optional[CIDetectionOptions] = None) -> bool:
    """Check whether step debug logging is enabled for the run."""
    env = get_env(options)
    return env.get("RUNNER_DEBUG") == "1" or env.get("ACTIONS_STEP_DEBUG") == "true"


def get_github_api_url(options: t.Optional[CIDetectionOptions] = None) -> str:
    """Get the API URL, which differs on GitHub Enterprise Server."""
    return get_env(options).get("GITHUB_API_URL") or DEFAULT_API_URL


def get_github_server_url(options: t.Optional[CIDetectionOptions] = None) -> str:
    return get_env(options).get("GITHUB_SERVER_URL") or DEFAULT_SERVER_URL
