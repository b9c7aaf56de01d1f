"""CI platform detection based on well known environment variables."""

import typing as t
from enum import Enum

from ciutils.env import CIDetectionOptions, Environ, get_env, is_truthy

__all__ = [
    "CIPlatform",
    "get_ci_platform",
    "is_ci",
    "is_inside_github_action",
    "is_inside_gitlab_ci",
    "is_inside_circleci",
]


class CIPlatform(str, Enum):
    """Supported CI platform identifiers."""

    GITHUB_ACTIONS = "github-actions"
    GITLAB_CI = "gitlab-ci"
    CIRCLECI = "circleci"
    TRAVIS = "travis"
    JENKINS = "jenkins"
    AZURE_PIPELINES = "azure-pipelines"
    BITBUCKET_PIPELINES = "bitbucket-pipelines"
    DRONE = "drone"
    BUILDKITE = "buildkite"
    SEMAPHORE = "semaphore"
    TEAMCITY = "teamcity"
    BAMBOO = "bamboo"
    APPVEYOR = "appveyor"
    WERCKER = "wercker"
    CODESHIP = "codeship"
    NETLIFY = "netlify"
    VERCEL = "vercel"
    AWS_CODEBUILD = "aws-codebuild"
    GCP_CLOUD_BUILD = "gcp-cloud-build"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


def _equals(name: str, expected: str) -> t.Callable[[Environ], bool]:
    return lambda env: (env.get(name) or "").lower() == expected


def _present(name: str) -> t.Callable[[Environ], bool]:
    return lambda env: bool(env.get(name))


_MARKERS: t.Tuple[t.Tuple[CIPlatform, t.Callable[[Environ], bool]], ...] = (
    (CIPlatform.GITHUB_ACTIONS, _equals("GITHUB_ACTIONS", "true")),
    (CIPlatform.GITLAB_CI, _equals("GITLAB_CI", "true")),
    (CIPlatform.CIRCLECI, _equals("CIRCLECI", "true")),
    (CIPlatform.TRAVIS, _equals("TRAVIS", "true")),
    (CIPlatform.JENKINS, _present("JENKINS_URL")),
    (CIPlatform.AZURE_PIPELINES, _equals("TF_BUILD", "true")),
    (CIPlatform.BITBUCKET_PIPELINES, _present("BITBUCKET_BUILD_NUMBER")),
    (CIPlatform.DRONE, _equals("DRONE", "true")),
    (CIPlatform.BUILDKITE, _equals("BUILDKITE", "true")),
    (CIPlatform.SEMAPHORE, _equals("SEMAPHORE", "true")),
    (CIPlatform.TEAMCITY, _present("TEAMCITY_VERSION")),
    (CIPlatform.BAMBOO, _present("bamboo_buildKey")),
    (CIPlatform.APPVEYOR, lambda env: is_truthy(env.get("APPVEYOR"))),
    (CIPlatform.WERCKER, _present("WERCKER_ROOT")),
    (CIPlatform.CODESHIP, _equals("CI_NAME", "codeship")),
    (CIPlatform.NETLIFY, _equals("NETLIFY", "true")),
    (CIPlatform.VERCEL, _equals("VERCEL", "1")),
    (CIPlatform.AWS_CODEBUILD, _present("CODEBUILD_BUILD_ID")),
    (CIPlatform.GCP_CLOUD_BUILD, _present("BUILDER_OUTPUT")),
)
"""Ordered platform markers. The first match wins."""


def get_ci_platform(options: t.Optional[CIDetectionOptions] = None) -> CIPlatform:
    """Detect which CI platform the process is running on.

    Returns:
        The detected platform, or CIPlatform.UNKNOWN.
    """
    env = get_env(options)
    for platform, matches in _MARKERS:
        if matches(env):
            return platform
    return CIPlatform.UNKNOWN


def is_ci(options: t.Optional[CIDetectionOptions] = None) -> bool:
    """Check whether the process is running in a CI environment.

    In strict mode only a recognised platform or CI=true|1 counts. Otherwise any
    enabled CI, CONTINUOUS_INTEGRATION or BUILD_NUMBER variable is enough.
    """
    if get_ci_platform(options) is not CIPlatform.UNKNOWN:
        return True
    env = get_env(options)
    if (env.get("CI") or "").lower() in ("true", "1"):
        return True
    if options is not None and not options.strict:
        return any(
            is_truthy(env.get(name))
            for name in ("CI", "CONTINUOUS_INTEGRATION", "BUILD_NUMBER")
        )
    return False


def is_inside_github_action(options: t.Optional[CIDetectionOptions] = None) -> bool:
    """Check whether the process is running inside GitHub Actions."""
    return get_ci_platform(options) is CIPlatform.GITHUB_ACTIONS


def is_inside_gitlab_ci(options: t.Optional[CIDetectionOptions] = None) -> bool:
    """Check whether the process is running inside GitLab CI."""
    return get_ci_platform(options) is CIPlatform.GITLAB_CI


def is_inside_circleci(options: t.Optional[CIDetectionOptions] = None) -> bool:
    return get_ci_platform(options) is CIPlatform.CIRCLECI
