"""
Prometheus metrics for monitoring and observability.

Provides counters and histograms for tracking:
- Object store operations and their outcome
- Security zone lookups
- Local download cache hits and downloads
"""

from typing import Callable
from functools import wraps
from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
)

# Create a global registry
REGISTRY = CollectorRegistry()

# ========== Counters ==========

# Storage operations
storage_operations_total = Counter(
    "storage_operations_total",
    "Total number of storage operations",
    ["operation", "status"],  # create/copy/delete/..., success/failure
    registry=REGISTRY,
)

# Security zone lookups
security_checks_total = Counter(
    "security_checks_total",
    "Total number of security zone lookups",
    ["source"],  # private_mode/cache/remote/error
    registry=REGISTRY,
)

# Local cache lookups
local_cache_lookups_total = Counter(
    "local_cache_lookups_total",
    "Total number of local download cache lookups",
    ["result"],  # hit/miss/failed
    registry=REGISTRY,
)

# ========== Histograms ==========

# Storage operation duration
storage_operation_duration_seconds = Histogram(
    "storage_operation_duration_seconds",
    "Time spent in a storage operation",
    ["operation"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY,
)

# Presigned URL downloads
download_duration_seconds = Histogram(
    "download_duration_seconds",
    "Time to download an object into the local cache",
    buckets=(0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0),
    registry=REGISTRY,
)


# ========== Metric Decorators ==========

def _outcome(result) -> str:
    # A returned status with ok=False is a failure even though nothing raised
    return "failure" if getattr(result, "ok", True) is False else "success"


def track_storage_operation(operation: str):
    """
    Decorator to track storage operation duration and outcome.

    Raised exceptions and returned statuses that are not ``ok`` both
    count as failures.

    Args:
        operation: Operation name (create/store/copy/delete/stat/...)
    """
    def decorator(func: Callable):
        @wraps(func)
        def wrapper(*args, **kwargs):
            outcome = "failure"
            with storage_operation_duration_seconds.labels(operation=operation).time():
                try:
                    result = func(*args, **kwargs)
                    outcome = _outcome(result)
                    return result
                finally:
                    storage_operations_total.labels(
                        operation=operation, status=outcome).inc()

        return wrapper
    return decorator


def get_metrics() -> bytes:
    """
    Get current metrics in Prometheus format.

    Returns:
        Metrics as bytes
    """
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get content type for metrics response."""
    return CONTENT_TYPE_LATEST
