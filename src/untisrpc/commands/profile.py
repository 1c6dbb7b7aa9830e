"""Profile commands -- manage WebUntis account profiles.

A profile names a server, a school and a user, plus where to read the
password from (``env:VAR``, ``file:/path`` or ``prompt``).  Passwords are
never written to disk.

Typical workflow::

    untisrpc profile add school --server mese.webuntis.com --school demo \\
        --username jdoe --password-source env:UNTIS_PASSWORD
    untisrpc profile test school
"""

from __future__ import annotations

from typing import Optional

import typer

from untisrpc.config import (
    check_password_source,
    check_profile_name,
    delete_profile,
    list_profiles,
    load_profile,
    profile_exists,
    save_profile,
)
from untisrpc.exceptions import ConfigError
from untisrpc.exit_codes import EXIT_INVALID_USAGE
from untisrpc.models import CacheConfig, CachePolicy, Profile, RequestConfig
from untisrpc.output import error, format_response, get_output, info, success, suggest

profile_app = typer.Typer(no_args_is_help=True)


def _load(name: str) -> Profile:
    try:
        return load_profile(name)
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None


@profile_app.command("add")
def profile_add(
    ctx: typer.Context,
    name: str = typer.Argument(help="Profile name."),
    server: str = typer.Option(..., "--server", help="WebUntis host, e.g. mese.webuntis.com."),
    school: str = typer.Option(..., "--school", help="School login name."),
    username: str = typer.Option(..., "--username", "-u", help="WebUntis user name."),
    password_source: str = typer.Option(
        "prompt", "--password-source", "-s", help="env:VAR, file:/path or prompt."
    ),
    policy: CachePolicy = typer.Option(
        CachePolicy.COORDINATED, "--cache-policy", help="Cache concurrency policy."
    ),
    no_cache: bool = typer.Option(False, "--no-cache", help="Disable response caching."),
    timeout: float = typer.Option(30.0, "--timeout", help="Request timeout in seconds."),
) -> None:
    """Create or replace a profile.

    Example::

        untisrpc profile add school --server mese.webuntis.com --school demo -u jdoe
    """
    try:
        check_profile_name(name)
        check_password_source(password_source)
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None

    force = ctx.obj.get("force", False) if ctx.obj else False
    if profile_exists(name) and not force:
        if not typer.confirm(f'Profile "{name}" exists. Overwrite?'):
            info("Cancelled.")
            raise typer.Exit()

    profile = Profile(
        name=name,
        server=server,
        school=school,
        username=username,
        password_source=password_source,
        request=RequestConfig(timeout=timeout),
        cache=CacheConfig(enabled=not no_cache, policy=policy),
    )
    save_profile(profile)
    success(f'Profile "{name}" saved.')
    suggest(f"Test it: untisrpc profile test {name}")


@profile_app.command("list")
def profile_list() -> None:
    """List profiles with their server, school and user."""
    names = list_profiles()
    if not names:
        info("No profiles configured.")
        suggest("Create one: untisrpc profile add <name> --server ... --school ... -u ...")
        return

    rows: list[list[str]] = []
    for name in names:
        try:
            profile = load_profile(name)
        except ConfigError:
            rows.append([name, "error", "-", "-"])
            continue
        rows.append([name, profile.server, profile.school, profile.username])
    get_output().print_table(["Profile", "Server", "School", "User"], rows, title="Profiles")


@profile_app.command("show")
def profile_show(name: str = typer.Argument(help="Profile name.")) -> None:
    """Show one profile."""
    format_response(_load(name).model_dump(mode="json"))


@profile_app.command("remove")
def profile_remove(
    ctx: typer.Context,
    name: str = typer.Argument(help="Profile name."),
) -> None:
    """Delete a profile.  Asks unless ``--force``."""
    _load(name)
    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force and not typer.confirm(f'Remove profile "{name}"?'):
        info("Cancelled.")
        raise typer.Exit()
    delete_profile(name)
    success(f'Profile "{name}" removed.')


@profile_app.command("test")
def profile_test(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Profile name (default: active profile)."),
) -> None:
    """Log in with a profile, print the session details and log out."""
    from untisrpc.commands.query import open_session

    with open_session(ctx, name) as session:
        session_info = session.info
        assert session_info is not None
        success("Login successful.")
        format_response(
            {
                "person_id": session_info.person_id,
                "person_type": (
                    session_info.person_type.name if session_info.person_type else None
                ),
                "class_id": session_info.class_id,
            }
        )
