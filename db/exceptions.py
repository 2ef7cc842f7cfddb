"""Errors raised by the Ignis CRM store.

Not-found and cross-workspace access are not errors: repository calls
return None (or do nothing) so a workspace never learns about another
workspace's rows.
"""


class CrmError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(CrmError):
    """Malformed input to a repository call; nothing was written."""


class InvalidFormatError(CrmError):
    """Backup envelope is malformed or has an unsupported version."""


class DestructiveOperationBlockedError(CrmError):
    """A replace-mode import was attempted without explicit confirmation."""
