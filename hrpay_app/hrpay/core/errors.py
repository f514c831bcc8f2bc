"""
Error types raised by the payroll services.
"""
from typing import Any, Optional

class PayrollError(Exception):
    """Base payroll error with a machine-readable code."""
    code = "PAYROLL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.payload = payload

    def to_dict(self):
        return {"code": self.code, "message": self.message, "detail": self.payload}

class InvalidConfiguration(PayrollError):
    """Statutory rates or tax brackets cannot be used for a calculation."""
    code = "INVALID_CONFIGURATION"

class InvalidInput(PayrollError):
    """Caller-supplied payroll data was rejected."""
    code = "INVALID_INPUT"
