"""Numeric process exit codes used by the ``frodo-auth`` CLI.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~frodo_auth.exceptions.FrodoError` subclass, so shell
wrappers can tell a rejected password from a broken configuration without
parsing stderr.

Example::

    $ frodo-auth login https://tenant.example.com/am admin wrong
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- credentials were rejected
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_CONFIGURATION_ERROR = 2
"""No host, incomplete credentials, or an unresolvable connection profile."""

EXIT_AUTH_FAILURE = 3
"""A login flow was rejected or returned no token."""

EXIT_UNSUPPORTED = 4
"""The deployment type or 2FA factor cannot be handled."""

EXIT_CACHE_ERROR = 5
"""The token cache could not be read, written, or decrypted."""
