"""Exceptions surfaced to callers of the analysis pipeline."""


class InputError(ValueError):
    """The decoded buffer is missing, empty or otherwise unusable."""
