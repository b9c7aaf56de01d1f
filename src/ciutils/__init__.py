from ciutils.ci import (
    CIPlatform,
    get_ci_platform,
    is_ci,
    is_inside_circleci,
    is_inside_github_action,
    is_inside_gitlab_ci,
)
from ciutils.command import run_command
from ciutils.configuration import ConfigurationLoader, load_config
from ciutils.env import CIDetectionOptions, get_env
from ciutils.exceptions import (
    CIUtilsError,
    CommandFailedError,
    CommandTimeoutError,
    MissingTokenError,
    NotInCIError,
    OperationTimeoutError,
)
from ciutils.exit_codes import ExitCode, is_valid_exit_code
from ciutils.runner import SafeRunOptions, safe_run, safely, supervise

__all__ = [
    "CIPlatform",
    "get_ci_platform",
    "is_ci",
    "is_inside_circleci",
    "is_inside_github_action",
    "is_inside_gitlab_ci",
    "run_command",
    "ConfigurationLoader",
    "load_config",
    "CIDetectionOptions",
    "get_env",
    "CIUtilsError",
    "CommandFailedError",
    "CommandTimeoutError",
    "MissingTokenError",
    "NotInCIError",
    "OperationTimeoutError",
    "ExitCode",
    "is_valid_exit_code",
    "SafeRunOptions",
    "safe_run",
    "safely",
    "supervise",
]
