from __future__ import annotations


class BlurclustError(Exception):
    """Base class for errors raised by the clustering pipeline."""


class DegenerateInputError(BlurclustError, ValueError):
    """Input that the image/blur stages cannot build a grid from (e.g. no hits)."""


class GeometryError(BlurclustError, ValueError):
    """A wire locator the detector geometry cannot map to a global wire."""
