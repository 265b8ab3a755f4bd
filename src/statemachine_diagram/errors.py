"""
Exception types raised by the diagram package.

Extraction and rendering are lenient: they log and continue instead of raising.
Only configuration loading surfaces errors to the caller.
"""


class DiagramError(Exception):
    """Base class for all diagram errors"""


class ConfigError(DiagramError):
    """Machine configuration could not be loaded or is structurally invalid"""

    def __init__(self, message: str, path: str = None):
        self.path = path
        if path:
            message = f"{path}: {message}"
        super().__init__(message)


class MalformedRequirementError(DiagramError):
    """A state requirement cannot be resolved against the declared states"""
