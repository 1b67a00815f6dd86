# vimmarch/__init__.py

# Versioning
__version__ = "1.0.0"

# Exception imports
from .utils.exceptions import VimmarchError
from .utils.exceptions import StartupValidationError
from .utils.exceptions import ConfigurationError
from .utils.exceptions import BackupIntegrityError
from .utils.exceptions import InvalidCommandError

__all__ = [
    "VimmarchError",
    "StartupValidationError",
    "ConfigurationError",
    "BackupIntegrityError",
    "InvalidCommandError",
]
