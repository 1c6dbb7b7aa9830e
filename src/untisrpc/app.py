"""Typer application and CLI entry point for untisrpc.

The root app registers the ``profile``, ``config`` and ``query`` command
groups.  :func:`main` is the console-script entry point declared in
``pyproject.toml``: it installs a SIGINT handler, runs the app, maps
:class:`~untisrpc.exceptions.UntisError` to its exit code and writes a
crash log for anything else.

See Also:
    :mod:`untisrpc.config`: Profile and global configuration resolution.
    :mod:`untisrpc.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from untisrpc import __version__
from untisrpc.commands.config import config_app
from untisrpc.commands.profile import profile_app
from untisrpc.commands.query import query_app
from untisrpc.exit_codes import EXIT_GENERIC_FAILURE

app = typer.Typer(
    name="untisrpc",
    help="Query WebUntis timetables and master data from the command line.",
    no_args_is_help=True,
    add_completion=True,
    rich_markup_mode="rich",
)

app.add_typer(profile_app, name="profile", help="Manage WebUntis account profiles.")
app.add_typer(config_app, name="config", help="Configuration management.")
app.add_typer(query_app, name="query", help="Run JSON-RPC queries.")

_LOGGER_NAME = "untisrpc"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"untisrpc {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool, no_color: bool) -> None:
    """Route library logging to stderr through Rich when ``--verbose`` is set."""
    logger = logging.getLogger(_LOGGER_NAME)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    if not verbose:
        logger.setLevel(logging.WARNING)
        return
    handler = RichHandler(
        console=Console(stderr=True, no_color=no_color),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    profile: Optional[str] = typer.Option(
        None, "--profile", "-p", help="Profile name to use."
    ),
    server: Optional[str] = typer.Option(
        None, "--server", help="Override the profile's WebUntis server."
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Log requests, cache and session events."
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmations."),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~untisrpc.output.OutputManager`, configures
    logging and stores shared options in ``ctx.obj``.
    """
    from untisrpc.config import load_global_config
    from untisrpc.exceptions import ConfigError
    from untisrpc.output import OutputFormat, OutputManager, set_output, warning

    fmt = OutputFormat.AUTO
    config_problem: Optional[ConfigError] = None
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN
    else:
        # Broken config must not lock the user out of `config reset`.
        try:
            fmt = OutputFormat(load_global_config().output.format)
        except ConfigError as exc:
            config_problem = exc
        except ValueError:
            fmt = OutputFormat.AUTO

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    _configure_logging(verbose, no_color)
    if config_problem is not None:
        warning(str(config_problem))

    ctx.ensure_object(dict)
    ctx.obj["profile"] = profile
    ctx.obj["server"] = server
    ctx.obj["format"] = None if fmt is OutputFormat.AUTO else fmt.value
    ctx.obj["force"] = force
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write the current traceback under the data directory and return its path."""
    from untisrpc.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``untisrpc`` console script.

    :class:`~untisrpc.exceptions.UntisError` exits with the error's
    ``exit_code``; any other exception writes a crash log and exits with
    :data:`~untisrpc.exit_codes.EXIT_GENERIC_FAILURE`.
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from untisrpc.exceptions import UntisError
        from untisrpc.output import error

        if isinstance(exc, UntisError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
