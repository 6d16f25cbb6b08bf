"""Conversion of rendered SVG markup into the requested output format.

This module provides:
- ConversionChain: Ordered fallback across conversion strategies
- ExternalRasterizer / InProcessRasterizer / ScreenshotRasterizer: PNG strategies
- DocumentPrinter: PDF through the engine's print capability
- repair_vector_markup: Heuristic fix-up of unbalanced SVG groups
"""

from .chain import ConversionChain, is_valid_document, is_valid_raster
from .config import ConversionConfig
from .repair import (
    ensure_dimensions,
    ensure_namespace,
    prepare_for_rasterization,
    repair_vector_markup,
    strip_executable_content,
)
from .strategies import (
    ConversionStrategy,
    DocumentPrinter,
    ExternalRasterizer,
    InProcessRasterizer,
    ScreenshotRasterizer,
    default_raster_strategies,
    resolve_rasterizer,
)
from .types import (
    ConversionContext,
    ConversionOutcome,
    DiagramProfile,
    OutputFormat,
    StrategyAttempt,
    detect_diagram_kind,
    profile_for,
)

__all__ = [
    # Types
    "OutputFormat",
    "DiagramProfile",
    "ConversionContext",
    "ConversionOutcome",
    "StrategyAttempt",
    "detect_diagram_kind",
    "profile_for",
    # Chain
    "ConversionChain",
    "ConversionConfig",
    "is_valid_raster",
    "is_valid_document",
    # Strategies
    "ConversionStrategy",
    "ExternalRasterizer",
    "InProcessRasterizer",
    "ScreenshotRasterizer",
    "DocumentPrinter",
    "default_raster_strategies",
    "resolve_rasterizer",
    # Repair
    "repair_vector_markup",
    "strip_executable_content",
    "ensure_namespace",
    "ensure_dimensions",
    "prepare_for_rasterization",
]
