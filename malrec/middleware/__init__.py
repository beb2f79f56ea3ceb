"""Application middleware."""

from malrec.middleware.correlation import (
    CorrelationIDMiddleware,
    CorrelationIdFilter,
    get_correlation_id,
)

__all__ = ["CorrelationIDMiddleware", "CorrelationIdFilter", "get_correlation_id"]
