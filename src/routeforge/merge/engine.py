from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from routeforge.merge.declarations import merge_declarations
from routeforge.merge.markers import merge_at_marker

logger = logging.getLogger(__name__)


class MergeStrategy(str, Enum):
    """How freshly rendered text combines with a file already on disk."""

    OVERWRITE = "overwrite"          # fully managed, fresh text wins
    SKIP = "skip"                    # generated once, then owned by the developer
    INSERT_MARKER = "insert_marker"  # append hooks above the insertion marker
    PROTECT = "protect"              # keep existing declarations, append new ones


def merge(existing: Optional[str], fresh: str, strategy: MergeStrategy, path: str = "") -> str:
    """
    Produce the text to write for one managed file.

    ``existing`` is None on first generation: the fresh render is used as-is
    whatever the strategy. Errors propagate (MarkerNotFoundError,
    MergeConflictError, RenderError); the caller must not write anything then.
    """
    if existing is None:
        return fresh

    strategy = MergeStrategy(strategy)
    if strategy is MergeStrategy.OVERWRITE:
        return fresh
    if strategy is MergeStrategy.SKIP:
        return existing
    if strategy is MergeStrategy.INSERT_MARKER:
        out = merge_at_marker(existing, fresh, path=path)
    else:
        out = merge_declarations(existing, fresh, path=path)

    if out != existing:
        logger.debug("merged %s (%s)", path or "<memory>", strategy.value)
    return out
