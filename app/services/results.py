from dataclasses import dataclass
from typing import Any, Optional

from services.exceptions import FleetDomainError


@dataclass
class OperationResult:
    """Outcome of a domain collection operation. Collections return these instead of raising."""
    success: bool
    data: Any = None
    error_type: Optional[str] = None
    message: Optional[str] = None
    field: Optional[str] = None
    status_code: int = 200

    @classmethod
    def ok(cls, data: Any = None, message: Optional[str] = None) -> "OperationResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, error: FleetDomainError) -> "OperationResult":
        return cls(
            success=False,
            error_type=error.__class__.__name__,
            message=error.message,
            field=error.field,
            status_code=error.status_code,
        )

    def to_dict(self) -> dict:
        if self.success:
            return {"success": True, "data": self.data, "message": self.message}
        return {
            "success": False,
            "error_type": self.error_type,
            "message": self.message,
            "field": self.field,
        }
