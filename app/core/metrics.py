import time
import uuid
import logging
from functools import wraps
from typing import Optional

from core.prometheus_metrics import prometheus_collector
from services.exceptions import CollaboratorError, FleetDomainError

logger = logging.getLogger(__name__)


def _outcome(error: Optional[BaseException]) -> str:
    if error is None:
        return "success"
    if isinstance(error, FleetDomainError) and not isinstance(error, CollaboratorError):
        return "rejected"
    return "error"


def track_performance(service_name: Optional[str] = None):
    """
    Times an async service method and records its outcome.

    Domain rejections (bad input, not found, duplicates) are counted as
    `rejected` and logged at INFO; collaborator and unexpected failures are
    counted as `error` and logged at WARNING. The exception always propagates.

    Usage:
        @track_performance(service_name="VehicleService")
        async def add_vehicle_core(self, data): ...
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            service = service_name or (args[0].__class__.__name__ if args else "Unknown")
            method = func.__name__
            # Fleet services are scoped by `owner_id`
            owner_id = getattr(args[0], 'owner_id', None) if args else None
            context = {
                'correlation_id': str(uuid.uuid4()),
                'service_name': service,
                'method_name': method,
                'owner_id': owner_id,
            }

            error: Optional[BaseException] = None
            started = time.perf_counter()
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                error = e
                raise
            finally:
                elapsed = time.perf_counter() - started
                outcome = _outcome(error)
                prometheus_collector.record_operation(service, method, elapsed, outcome)

                context.update(duration_ms=round(elapsed * 1000, 2), outcome=outcome)
                if outcome == "error":
                    logger.warning(f"{service}.{method} failed: {error}", extra=context)
                else:
                    logger.info(f"{service}.{method} {outcome}", extra=context)

        return wrapper
    return decorator
