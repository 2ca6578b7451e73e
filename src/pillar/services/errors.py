"""Domain errors raised by services.

Learn: Services never raise HTTPException — they don't know they're
behind HTTP (the CLI sweep calls them too). Routes translate:
NotFoundError → 404, ConflictError → 409, LimitExceededError → 400.
Field-level problems surface as ModelValidationError from the models.
"""


class NotFoundError(Exception):
    """A referenced record doesn't exist (or isn't the caller's)."""
    pass


class ConflictError(Exception):
    """The write would violate a uniqueness rule."""
    pass


class LimitExceededError(Exception):
    """The caller already owns the maximum number of these records."""
    pass
