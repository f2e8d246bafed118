"""
Exceptions raised by the electron selection stage.

Every fatal condition of the selector is one of these. There is no
per-object error: an electron either passes or fails a cut.
"""


class SelectionError(Exception):
    """Base class for all selection-stage errors."""


class ConfigurationError(SelectionError):
    """Invalid, missing or mistyped configuration option."""


class MissingInputError(SelectionError):
    """
    A required upstream input (collection, vertex, event decoration)
    could not be retrieved for the current event.
    """

    def __init__(self, key, what="input"):
        self.key = key
        super().__init__(f"Could not retrieve {what} '{key}'")


class ToolInitializationError(SelectionError):
    """An identification or isolation tool failed to initialize."""
