# vimmarch/utils/exceptions.py

class VimmarchError(Exception):
    """Base exception for all errors raised by vimmarch."""


class StartupValidationError(VimmarchError):
    """Raised when the host fails a precondition. Always fatal, before any task runs."""
    def __init__(self, check: str, message: str):
        self.check = check
        self.message = message
        super().__init__(f"{check}: {message}")


class ConfigurationError(StartupValidationError):
    """Raised when a configuration file is missing or does not validate."""
    def __init__(self, path, message: str):
        self.path = path
        super().__init__("configuration", f"{message} ({path})")


class BackupIntegrityError(VimmarchError):
    """Raised when a backup could not be created, verified or restored."""
    def __init__(self, path, message: str = "Backup failed"):
        self.path = path
        self.message = message
        super().__init__(f"{message}: '{path}'")


class InvalidCommandError(VimmarchError):
    """Raised when the command string/list is invalid, empty, or improperly formatted."""
    def __init__(self, command: str, message: str = "Invalid command format"):
        self.command = command
        self.message = message
        super().__init__(f"{message} (Command: '{command}')")


class RunInterrupted(KeyboardInterrupt):
    """Raised from the signal handler on SIGTERM so it unwinds like Ctrl-C."""
    def __init__(self, signum: int):
        self.signum = signum
        super().__init__(f"Received signal {signum}")
