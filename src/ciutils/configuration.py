"""Configuration loader for ciutils."""

import ast
import io
import json
import os
import re
import string
import sys
import typing as t
from pathlib import Path

import yaml
from box import Box

from ciutils.exceptions import ConfigInvalidError

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


ConfigurationSource = t.Union[
    str, Path, t.Mapping[str, t.Any], t.Callable[[], "ConfigurationSource"]
]

ENV_PREFIX = "CIUTILS__"
"""Prefix of environment variables folded into the configuration."""

CONFIG_NAME = "ciutils"
"""Base name of configuration files searched for by default."""

__all__ = [
    "ConfigurationSource",
    "ConfigBox",
    "ConfigurationLoader",
    "add_custom_converter",
    "load_config",
    "ENV_PREFIX",
]


def _to_bool(value: str) -> bool:
    """Convert a string to a boolean value."""
    return value.strip().lower() in ("true", "yes", "1", "on")


def _make_eval_func(type_: t.Type):
    """Create a function to evaluate a py literal string with type assertion."""

    def _eval(value: str) -> t.Any:
        v = ast.literal_eval(value)
        if not isinstance(v, type_):
            raise ValueError(f"Value is not of type {type_}")
        return v

    return _eval


_CONVERTERS: t.Dict[str, t.Optional[t.Callable[[str], t.Any]]] = {
    "json": json.loads,
    "int": int,
    "float": float,
    "str": str,
    "bool": _to_bool,
    "path": os.path.abspath,
    "dict": _make_eval_func(dict),
    "list": _make_eval_func(list),
    "tuple": _make_eval_func(tuple),
    "set": _make_eval_func(set),
    "resolve": None,
}
"""Converters for configuration values."""

_CONVERTER_PATTERN = re.compile(r"@(\w+) ", re.IGNORECASE)
"""Pattern to match converters in a string."""


def add_custom_converter(name: str, converter: t.Callable[[str], t.Any]) -> None:
    """Add a custom converter to the configuration system."""
    if name in _CONVERTERS:
        raise ValueError(f"Converter {name} already exists.")
    _CONVERTERS[name] = converter


def _expand_env_vars(template: str, **env_overrides: t.Any) -> str:
    """Resolve environment variables in the format ${VAR} or $VAR."""
    return string.Template(template).safe_substitute(env_overrides, **os.environ)


def _load_file(
    path: t.Union[str, Path],
    mode: str = "r",
    parser: t.Callable[[str], t.Any] = json.loads,
    **env_overrides: t.Any,
) -> t.Any:
    """Read a file from the given path and parse it using the specified parser."""
    with open(path, mode=mode) as f:
        rendered = _expand_env_vars(f.read(), **env_overrides)
    return parser(rendered)


def _fold_env_vars(
    environ: t.Mapping[str, str], prefix: str = ENV_PREFIX
) -> t.Dict[str, t.Any]:
    """Nest prefixed environment variables using double underscores as separators.

    CIUTILS__RUNNER__TIMEOUT_MS=100 becomes {"runner": {"timeout_ms": "100"}}.
    """
    folded: t.Dict[str, t.Any] = {}
    for key, value in environ.items():
        if not key.upper().startswith(prefix):
            continue
        parts = [p.lower() for p in key[len(prefix) :].split("__") if p]
        if not parts:
            continue
        node = folded
        for part in parts[:-1]:
            node = node.setdefault(part, {})
            if not isinstance(node, dict):
                break
        else:
            node[parts[-1]] = value
    return folded


class ConfigBox(Box):
    """Box that applies @ converters to configuration values."""

    def __getitem__(self, item: t.Any, _ignore_default: bool = False) -> t.Any:
        value = super().__getitem__(item, _ignore_default)
        if isinstance(value, str):
            return self._apply_converters(value)
        return value

    def values(self) -> t.ValuesView[t.Any]:  # type: ignore
        return t.cast(
            t.ValuesView[t.Any],
            [self[k] for k in self.keys()],
        )

    def _apply_converters(self, data: str) -> t.Any:
        """Apply converters to a configuration value.

        Converters are prefixed with @ and applied right to left, so
        "@int 42" yields 42 and "@resolve runner.timeout_ms" looks up another key.

        Args:
            data: Configuration value to apply converters to.

        Raises:
            ConfigInvalidError: If an unknown converter is used or if a conversion fails.

        Returns:
            Converted configuration value.
        """
        data = _expand_env_vars(data)
        converters = _CONVERTER_PATTERN.findall(data)
        if len(converters) == 0:
            return data
        base_v = _CONVERTER_PATTERN.sub("", data).lstrip()
        if not base_v:
            return None
        transformed_v: t.Any = base_v
        for converter in reversed(converters):
            name = converter.lower()
            if name not in _CONVERTERS:
                raise ConfigInvalidError(f"Unknown converter: {converter}")
            try:
                if name == "resolve":
                    transformed_v = self[transformed_v]
                else:
                    transformed_v = _CONVERTERS[name](transformed_v)  # type: ignore[misc]
            except KeyError as e:
                raise ConfigInvalidError(f"Key not found in resolver: {e}") from e
            except Exception as e:
                raise ConfigInvalidError(f"Failed to convert value: {e}") from e
        return transformed_v


class ConfigurationLoader:
    """Loads configuration from multiple sources and merges them in order."""

    SUPPORTED_EXTENSIONS = ("json", "yaml", "yml", "toml")

    def __init__(
        self,
        *sources: ConfigurationSource,
        include_envvars: bool = True,
        environ: t.Optional[t.Mapping[str, str]] = None,
    ) -> None:
        """Initialize the configuration loader with given sources.

        Args:
            sources: Configuration sources to load. Later sources win.
            include_envvars: Whether to fold in CIUTILS__ prefixed environment variables.
            environ: Environment to read from instead of os.environ.
        """
        self.sources: t.Tuple[ConfigurationSource, ...] = sources
        if include_envvars:
            env = os.environ if environ is None else environ
            self.sources += (lambda: _fold_env_vars(env),)
        self._config: t.Optional[ConfigBox] = None

    @classmethod
    def from_name(
        cls,
        name: str = CONFIG_NAME,
        /,
        *,
        search_path: t.Optional[Path] = None,
        **kwargs: t.Any,
    ) -> "ConfigurationLoader":
        """Create a configuration loader by searching for files with supported extensions.

        Args:
            name: Name of the configuration file without extension.
            search_path: Path to search for the configuration file.

        Returns:
            Configuration loader with the found configuration files.
        """
        path = search_path or Path.cwd()
        return cls(
            *tuple(
                conf_path
                for ext in cls.SUPPORTED_EXTENSIONS
                for conf_path in path.glob(f"{name}.{ext}")
            ),
            **kwargs,
        )

    @property
    def config(self) -> ConfigBox:
        """The loaded configuration, loading it on first access."""
        if self._config is None:
            return self.load()
        return self._config

    def add_source(self, source: ConfigurationSource) -> ConfigBox:
        """Add a configuration source to the loader and reload."""
        self.sources += (source,)
        return self.load()

    def load(self) -> ConfigBox:
        """Load and merge configurations from all sources."""
        merged = ConfigBox(box_dots=True)
        for source in self.sources:
            merged.merge_update(Box(self._load(source), box_dots=True))
        self._config = merged
        return merged

    @staticmethod
    def _load(source: ConfigurationSource) -> t.Mapping[str, t.Any]:
        """Load configuration from a single source.

        Args:
            source: Configuration source to load.

        Returns:
            Configuration as a dictionary.
        """
        if callable(source):
            return ConfigurationLoader._load(source())
        elif isinstance(source, t.Mapping):
            return source
        elif isinstance(source, (str, Path)):
            path = Path(source)
            if not path.exists():
                return {}
            if path.suffix == ".json":
                return _load_file(path, parser=json.loads)
            elif path.suffix in (".yaml", ".yml"):
                return (
                    _load_file(path, parser=lambda s: yaml.safe_load(io.StringIO(s)))
                    or {}
                )
            elif path.suffix == ".toml":
                return _load_file(path, parser=tomllib.loads)
            else:
                raise ConfigInvalidError(f"Unsupported file format: {path.suffix}")
        else:
            raise TypeError(f"Invalid config source: {source}")


def load_config(
    *paths: t.Union[str, Path],
    include_envvars: bool = True,
    environ: t.Optional[t.Mapping[str, str]] = None,
) -> ConfigBox:
    """Load the ciutils configuration.

    When no paths are given, ciutils.{json,yaml,yml,toml} in the working directory
    are used.
    """
    if paths:
        loader = ConfigurationLoader(
            *paths, include_envvars=include_envvars, environ=environ
        )
    else:
        loader = ConfigurationLoader.from_name(
            include_envvars=include_envvars, environ=environ
        )
    return loader.load()
