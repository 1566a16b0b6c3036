class CharLMError(Exception):
    """Base class of every error raised by charlm."""


class InvalidInputError(CharLMError, ValueError):
    """A sentence or seed contains a reserved sentinel glyph (or is empty)."""


class OutOfRangeError(CharLMError, IndexError):
    """An id outside the vocabulary was requested."""


class ConfigurationError(CharLMError, ValueError):
    """Invalid model, trainer or decoder configuration."""


class PersistenceError(CharLMError):
    """The serialized model could not be written or read."""
