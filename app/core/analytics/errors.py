"""
Analytics Errors — Exception taxonomy for the core handlers.

Input-insufficiency is NOT an exception: the statistical engine returns a
low-confidence AnalysisResult with metadata["error"] instead.
"""


class AnalyticsError(Exception):
    """Base class for all analytics core errors."""


class UnsupportedModelError(AnalyticsError, ValueError):
    """Requested model kind is not one of the supported analyses."""


class PipelineConfigError(AnalyticsError):
    """Pipeline configuration is malformed (unknown step, bad operator, ...)."""


class FeedbackValidationError(AnalyticsError):
    """Feedback event payload is invalid (rating out of range, bad type)."""


class DatasetNotFoundError(AnalyticsError):
    """Dataset does not exist or is not owned by the caller."""


class PipelineNotFoundError(AnalyticsError):
    """Pipeline configuration does not exist or is not owned by the caller."""


class UpstreamError(AnalyticsError):
    """An external collaborator (record provider, pattern store) failed."""


class RecordProviderError(UpstreamError):
    pass


class PatternStoreError(UpstreamError):
    pass


class InsightStoreError(UpstreamError):
    pass
