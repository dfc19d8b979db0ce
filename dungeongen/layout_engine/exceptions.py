"""Exceptions raised by the layout engine."""


class DungeonGenerationError(Exception):
    """Base class for layout engine errors."""


class DungeonConfigurationError(DungeonGenerationError, ValueError):
    """The input graph or parameters cannot be laid out.

    Raised before any geometry work starts.
    """
