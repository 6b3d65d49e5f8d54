"""Exceptions raised by the mode learner."""


class ModelearnError(Exception):
    """Base class for all mode learner errors."""
    pass


class InvariantViolation(ModelearnError):
    """Raised when input data breaks a structural contract.

    Examples are a feature vector whose width does not match its scene
    signature, or two objects of the same type with different property
    counts.
    """
    pass


class LoadError(ModelearnError):
    """Raised when a checkpoint cannot be restored."""
    pass


class InspectError(ModelearnError):
    """Raised for malformed introspection queries."""
    pass
