"""Error taxonomy helpers and the ordered error pipeline."""

from .classify import AppException, error_from_exception, error_from_status
from .pipeline import ErrorPipeline, get_error_pipeline, log_unhandled_error

__all__ = [
    "AppException",
    "ErrorPipeline",
    "error_from_exception",
    "error_from_status",
    "get_error_pipeline",
    "log_unhandled_error",
]
