"""
Exception types shared by the engine, the persistence layer and the API.

Empty outcomes (no eligible exercises, no alternative, no history) are not
errors and never raise; they come back as empty lists or ``None``.
"""


class CoachEngineError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(CoachEngineError, ValueError):
    """Invalid configuration rejected before any computation runs.

    Examples: a non-positive rolling window, an unknown workout goal or
    an unknown equipment name.
    """


class CollaboratorError(CoachEngineError):
    """An upstream collaborator (catalogue, activity feed) failed.

    Raising this never leaves the fatigue profile partially mutated.
    """


class CatalogueUnavailableError(CollaboratorError):
    """The exercise catalogue or history could not be fetched."""


class ActivityFeedError(CollaboratorError):
    """The activity feed could not be read."""
