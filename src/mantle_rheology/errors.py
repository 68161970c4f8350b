"""Exception types."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid or inconsistent model setup.

    Raised at construction/parse time (unknown selector, missing compositional
    field, bad field ordering, wrong list length, ...). There is no recovery:
    the caller is expected to abort the run.
    """
