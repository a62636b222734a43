"""Layered layout engine contract.

An engine takes a ``LayeredGraph`` (sized nodes and edges by node id) plus
``LayeredOptions`` and returns positioned nodes and bounds. Engines may
raise; callers are expected to handle failure themselves.
"""

from __future__ import annotations

import functools
import importlib
import logging
from typing import Protocol

from c4_layout.layout.types import LayeredGraph, LayeredOptions, LayoutResult

logger = logging.getLogger(__name__)

DEFAULT_ENGINE_MODULE = "c4_layout.layout.sugiyama"


class LayoutEngineError(RuntimeError):
    """Raised by an engine that cannot lay out the graph it was given."""


class LayoutEngine(Protocol):
    """Protocol that all layered layout engines must implement."""

    async def layout(self, graph: LayeredGraph, options: LayeredOptions) -> LayoutResult:
        """Position every node of ``graph``."""
        ...


@functools.lru_cache(maxsize=None)
def default_engine() -> LayoutEngine:
    """Load the bundled layered engine on first use."""
    module = importlib.import_module(DEFAULT_ENGINE_MODULE)
    logger.debug("Loaded layered engine from %s", DEFAULT_ENGINE_MODULE)
    return module.SugiyamaEngine()
