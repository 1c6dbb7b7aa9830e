"""Profiles, global settings and password sources for the ``untisrpc`` CLI.

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.untisrpc/`` elsewhere.  See :func:`get_config_dir`,
  :func:`get_data_dir`, :func:`get_profiles_dir`.
* **Global config** -- one :class:`~untisrpc.models.GlobalConfig` JSON file.
* **Profiles** -- one JSON file per WebUntis account, each a
  :class:`~untisrpc.models.Profile`.  Passwords are never written; a
  profile only names where to read one from.
* **Precedence** -- :func:`resolve_config` layers CLI flags, environment
  variables, the project file ``./untisrpc.json`` and the global config.
* **Passwords** -- :func:`resolve_credential` reads ``env:``, ``file:`` and
  ``prompt`` sources; :func:`check_password_source` validates one without
  reading it.
"""

from __future__ import annotations

import getpass
import json
import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from untisrpc.exceptions import ConfigError
from untisrpc.models import GlobalConfig, Profile

_APP_NAME = "untisrpc"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "untisrpc.json"

ENV_PROFILE = "UNTISRPC_PROFILE"
ENV_SERVER = "UNTISRPC_SERVER"

C = TypeVar("C", bound=BaseModel)


# --- Directories ---


def _is_xdg_platform() -> bool:
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _app_dir(xdg_var: str, xdg_default: tuple[str, ...], *fallback: str) -> Path:
    if _is_xdg_platform():
        base = os.environ.get(xdg_var) or Path.home().joinpath(*xdg_default)
        path = Path(base) / _APP_NAME
    else:
        path = Path.home().joinpath(f".{_APP_NAME}", *fallback)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_dir() -> Path:
    """Directory holding ``config.json`` and ``profiles/``.

    ``$XDG_CONFIG_HOME/untisrpc/`` (default ``~/.config/untisrpc/``) on
    Linux/BSD, ``~/.untisrpc/`` elsewhere.  Created on demand.
    """
    return _app_dir("XDG_CONFIG_HOME", (".config",))


def get_data_dir() -> Path:
    """Directory for crash logs.

    ``$XDG_DATA_HOME/untisrpc/`` (default ``~/.local/share/untisrpc/``) on
    Linux/BSD, ``~/.untisrpc/logs/`` elsewhere.  Created on demand.
    """
    return _app_dir("XDG_DATA_HOME", (".local", "share"), "logs")


def get_profiles_dir() -> Path:
    path = get_config_dir() / "profiles"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- JSON files ---


def _atomic_write(path: Path, data: str) -> None:
    """Replace *path* with *data* via a synced temp file in the same directory.

    Readers see either the old or the new content.  The temp file is
    removed if anything fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _read_json(path: Path, what: str) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except ValueError as exc:
        raise ConfigError(f"Invalid {what} at {path}: {exc}") from exc


def _load_model(path: Path, model: type[C], what: str) -> C:
    data = _read_json(path, what)
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid {what} at {path}: {exc}") from exc


def _write_model(path: Path, value: BaseModel) -> None:
    _atomic_write(path, json.dumps(value.model_dump(mode="json"), indent=2) + "\n")


# --- Global config ---


def _global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration, or defaults when no file exists.

    Raises:
        ConfigError: If the file holds invalid JSON or fails validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    return _load_model(path, GlobalConfig, "global config")


def save_global_config(config: GlobalConfig) -> None:
    _write_model(_global_config_path(), config)


# --- Profiles ---


def check_profile_name(name: str) -> str:
    """Return *name* if it can be used as a profile file name.

    Raises:
        ConfigError: For empty names, hidden names or names containing a
            path separator.
    """
    if not name or name.startswith(".") or "/" in name or "\\" in name:
        raise ConfigError(f"Invalid profile name: {name!r}")
    return name


def _profile_path(name: str) -> Path:
    return get_profiles_dir() / f"{check_profile_name(name)}.json"


def list_profiles() -> list[str]:
    """Return all profile names, sorted."""
    return sorted(p.stem for p in get_profiles_dir().glob("*.json") if p.is_file())


def profile_exists(name: str) -> bool:
    return _profile_path(name).is_file()


def load_profile(name: str) -> Profile:
    """Load and validate the profile stored as ``<name>.json``.

    Raises:
        ConfigError: If the profile does not exist or is invalid.
    """
    path = _profile_path(name)
    if not path.is_file():
        raise ConfigError(f"Profile '{name}' not found at {path}")
    return _load_model(path, Profile, f"profile '{name}'")


def save_profile(profile: Profile) -> None:
    """Write *profile* after checking its name and password source.

    Raises:
        ConfigError: If either is invalid.
    """
    check_password_source(profile.password_source)
    _write_model(_profile_path(profile.name), profile)


def delete_profile(name: str) -> None:
    """Delete a profile.

    Raises:
        ConfigError: If the profile does not exist.
    """
    path = _profile_path(name)
    if not path.is_file():
        raise ConfigError(f"Profile '{name}' not found at {path}")
    path.unlink()


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load ``./untisrpc.json`` if present.

    The file usually pins ``default_profile`` for a working directory.

    Raises:
        ConfigError: If the file holds invalid JSON or is not an object.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    data = _read_json(path, "project config")
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid project config at {path}: expected a JSON object")
    return data


# --- Precedence resolution ---


def _first(*candidates: Optional[str]) -> Optional[str]:
    return next((c for c in candidates if c), None)


def resolve_config(
    cli_profile: Optional[str] = None,
    cli_server: Optional[str] = None,
    cli_format: Optional[str] = None,
) -> tuple[GlobalConfig, Optional[Profile]]:
    """Resolve the effective configuration.

    Precedence (high to low):
        1. CLI flags (``cli_profile``, ``cli_server``, ``cli_format``)
        2. Environment variables (``UNTISRPC_PROFILE``, ``UNTISRPC_SERVER``)
        3. Project config (``./untisrpc.json``)
        4. User config (``~/.config/untisrpc/config.json``)
        5. The only profile, when exactly one exists and
           ``auto_select_single_profile`` is on

    The server override replaces the profile's server for this run only;
    the stored profile is not touched.

    Returns:
        ``(global_config, active_profile_or_None)``.
    """
    global_cfg = load_global_config()
    project = load_project_config() or {}

    profile_name = _first(
        cli_profile,
        os.environ.get(ENV_PROFILE),
        project.get("default_profile"),
        global_cfg.default_profile,
    )
    if profile_name is None and global_cfg.auto_select_single_profile:
        profiles = list_profiles()
        if len(profiles) == 1:
            profile_name = profiles[0]

    profile: Optional[Profile] = None
    if profile_name is not None:
        profile = load_profile(profile_name)
        server = _first(cli_server, os.environ.get(ENV_SERVER))
        if server is not None:
            profile = profile.model_copy(update={"server": server})

    if cli_format is not None:
        global_cfg.output.format = cli_format

    return global_cfg, profile


# --- Password sources ---


def _password_from_env(var_name: str, source: str) -> str:
    value = os.environ.get(var_name)
    if value is None:
        raise ConfigError(f"Environment variable '{var_name}' is not set (source: {source})")
    return value


def _password_from_file(file_name: str, source: str) -> str:
    path = Path(file_name).expanduser()
    if not path.is_file():
        raise ConfigError(f"Password file not found: {path} (source: {source})")
    try:
        return path.read_text(encoding="utf-8").strip()
    except OSError as exc:
        raise ConfigError(f"Cannot read password file {path}: {exc}") from exc


def _password_from_prompt(account: str, source: str) -> str:
    if not sys.stdin.isatty():
        raise ConfigError(f"Cannot prompt for a password: stdin is not a TTY (source: {source})")
    label = f" for {account}" if account else ""
    return getpass.getpass(f"WebUntis password{label}: ")


_PASSWORD_READERS: dict[str, Callable[[str, str], str]] = {
    "env": _password_from_env,
    "file": _password_from_file,
    "prompt": _password_from_prompt,
}


def check_password_source(source: str) -> tuple[str, str]:
    """Split *source* into ``(kind, argument)`` without reading anything.

    ``env:`` and ``file:`` need an argument; ``prompt`` takes none.

    Raises:
        ConfigError: If the descriptor is malformed or of an unknown kind.
    """
    kind, _, argument = source.partition(":")
    if kind == "prompt" and not argument:
        return kind, ""
    if kind in ("env", "file") and argument:
        return kind, argument
    raise ConfigError(
        f"Unknown password source format: {source!r} (use env:VAR, file:/path or prompt)"
    )


def resolve_credential(source: str, account: str = "") -> str:
    """Read a password from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads the file, stripped of whitespace
        - ``"prompt"`` -- asks interactively (requires a TTY); *account*
          is shown in the prompt

    Raises:
        ConfigError: If the source can't be resolved.
    """
    kind, argument = check_password_source(source)
    if kind == "prompt":
        argument = account
    return _PASSWORD_READERS[kind](argument, source)
