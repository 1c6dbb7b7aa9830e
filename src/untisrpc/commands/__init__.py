"""Built-in CLI sub-commands for untisrpc.

* :mod:`~untisrpc.commands.profile` -- add, inspect and test account profiles.
* :mod:`~untisrpc.commands.config` -- view and modify global settings.
* :mod:`~untisrpc.commands.query` -- run read-only JSON-RPC queries.

Each module exports a :class:`typer.Typer` sub-application registered on
the root app in :mod:`untisrpc.app`.
"""
