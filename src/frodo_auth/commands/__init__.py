"""Built-in CLI sub-commands for frodo-auth.

* :mod:`~frodo_auth.commands.login` -- log in and report the session.
* :mod:`~frodo_auth.commands.cache` -- inspect and maintain the token cache.

``login`` is a plain callback registered directly on the root app; ``cache``
is a :class:`typer.Typer` sub-application.
"""
