# src/coral_abc/errors.py


class ConfigurationError(ValueError):
    """Raised before any simulation when sampler or simulator inputs are invalid."""


class NoAcceptancesError(RuntimeError):
    """Raised when a sampler ends up with nothing to return.

    For the rejection sampler this means no draw fell below the tolerance;
    for SMC it means every particle in a generation was degenerate.
    """
