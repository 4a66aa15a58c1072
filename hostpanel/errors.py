"""Fatal startup errors. Anything else is degraded to a sentinel where it happens."""


class StartupError(Exception):
    """A precondition failed before monitoring could begin."""


class PrivilegeError(StartupError):
    pass


class LockHeldError(StartupError):
    pass


class LockSecurityError(StartupError):
    """The lock path is a symlink or belongs to another user."""


class LogSinkError(StartupError):
    pass
