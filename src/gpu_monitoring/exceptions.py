"""
Prometheus Client Errors

Raised by the query executor and the fan-out aggregator. Route handlers
catch PrometheusError, log the detail and answer with a generic message.
"""

from typing import Optional


class PrometheusError(Exception):
    """Base class for failures talking to Prometheus."""
    pass


class TransportError(PrometheusError):
    """Prometheus could not be reached (connection refused, timeout, DNS)."""
    pass


class ProtocolError(PrometheusError):
    """Prometheus answered, but not with a 200 and a decodable envelope."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class QueryError(PrometheusError):
    """The envelope decoded but reported a non-success status."""

    def __init__(self, error_type: str, error: str):
        self.error_type = error_type
        self.error = error
        super().__init__(f"prometheus query failed: {error_type} - {error}")


class FanOutError(PrometheusError):
    """One of the named queries in a fan-out failed."""

    def __init__(self, query_name: str, cause: Exception):
        self.query_name = query_name
        self.cause = cause
        super().__init__(f"query {query_name} failed: {cause}")
