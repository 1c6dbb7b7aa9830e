"""Config commands -- view and modify the global configuration.

``untisrpc config show|set|reset`` operate on
:class:`~untisrpc.models.GlobalConfig`.  Per-account settings (server,
cache policy, timeouts) live in profiles; see :mod:`untisrpc.commands.profile`.
"""

from __future__ import annotations

from typing import Any

import typer
from pydantic import ValidationError

from untisrpc.config import get_config_dir, load_global_config, save_global_config
from untisrpc.exit_codes import EXIT_INVALID_USAGE
from untisrpc.models import GlobalConfig
from untisrpc.output import error, format_response, info, success

config_app = typer.Typer(no_args_is_help=True)


def coerce_value(current: Any, value: str) -> Any:
    """Convert the CLI string *value* to the type of the *current* setting.

    Raises:
        ValueError: If *value* does not parse as the current type.
    """
    if isinstance(current, bool):
        lowered = value.lower()
        if lowered in ("true", "1", "yes", "on"):
            return True
        if lowered in ("false", "0", "no", "off"):
            return False
        raise ValueError(f"expected a boolean, got: {value}")
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    return value


@config_app.command("show")
def config_show() -> None:
    """Show the global configuration.

    Example::

        untisrpc config show --json
    """
    info(f"Config directory: {get_config_dir()}")
    format_response(load_global_config().model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Config key (dot notation, e.g. 'output.format')."),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value.

    The value is coerced to the existing field's type and the result is
    validated before it is saved.

    Example::

        untisrpc config set default_profile school
        untisrpc config set output.format json
    """
    data = load_global_config().model_dump(mode="json")

    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if not isinstance(target.get(k), dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=EXIT_INVALID_USAGE)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target:
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    try:
        coerced = coerce_value(target[final_key], value)
    except ValueError as exc:
        error(f"Bad value for {key}: {exc}")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    target[final_key] = coerced

    try:
        new_config = GlobalConfig.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None

    save_global_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Reset the global configuration to defaults.  Asks unless ``--force``."""
    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force and not typer.confirm("Reset all config to defaults?"):
        info("Cancelled.")
        raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")
