"""Error types for local session state and persistence."""


class PersistenceError(Exception):
    """A scrollback file could not be written."""


class RecipientValidationError(ValueError):
    """An entered recipient address is not an international phone number."""
