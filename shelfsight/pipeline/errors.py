from __future__ import annotations


class AnalysisError(RuntimeError):
    """Base class for recoverable per-image pipeline failures."""


class DecodeError(AnalysisError):
    """Raised when an image reference cannot be resolved or decoded."""


class SaliencyComputeError(AnalysisError):
    """Raised when the saliency field cannot be computed numerically."""


class RenderError(AnalysisError):
    """Raised when the heatmap compositing surface cannot be produced."""


class ScoringError(AnalysisError):
    """Raised when remote scoring fails or returns an unusable response."""
