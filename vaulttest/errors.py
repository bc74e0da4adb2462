class VaultTestError(Exception):
    """Base class for every error raised by vaulttest"""


class EnvironmentPreconditionError(VaultTestError):
    """The host is not set up to run a test server"""


class HomeDirectoryError(EnvironmentPreconditionError):
    pass


class BinaryNotFoundError(EnvironmentPreconditionError):
    pass


class ClientConfigError(EnvironmentPreconditionError):
    pass


class LaunchError(VaultTestError):
    """The server process could not be spawned"""


class StartupError(VaultTestError):
    """The server process started but never became usable"""


class CredentialsNotFoundError(StartupError):
    pass


class StartupTimeoutError(StartupError):
    pass


class ServerStateError(VaultTestError):
    """An operation was called in the wrong lifecycle state"""
