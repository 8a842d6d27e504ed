from __future__ import annotations


class GenerationError(Exception):
    """Base error for anything that must abort a regeneration run.

    ``path`` names the offending output file (or descriptor path) when known.
    """

    def __init__(self, message: str, path: str = "") -> None:
        self.message = message
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class RouteTreeError(GenerationError):
    pass


class DuplicateRouteError(RouteTreeError):
    """Two descriptors map to one method+path, or to one generated handler name."""


class ConflictingMiddlewareError(RouteTreeError):
    """Two descriptors declare different group middleware for the same node."""


class RenderError(GenerationError):
    """A template could not be rendered (undefined field, bad syntax, unknown name)."""


class TemplateConfigError(GenerationError):
    pass


class MergeError(GenerationError):
    pass


class MarkerNotFoundError(MergeError):
    """A managed aggregator file lost its insertion marker."""


class MergeConflictError(MergeError):
    """Existing file content cannot be parsed into unambiguous declarations."""
