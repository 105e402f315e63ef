"""Write-boundary validation package."""

from flatledger.validation.validator import RecordValidator

__all__ = ["RecordValidator"]
