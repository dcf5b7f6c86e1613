"""
Regimen Exposure Validation
===========================

Invariant checks for each pipeline stage.
"""

from .regimen_validators import (
    ValidationResult,
    run_all_validations,
    validate_exposures,
    validate_eras,
    validate_regimen_exposures,
)

__all__ = [
    'ValidationResult',
    'run_all_validations',
    'validate_exposures',
    'validate_eras',
    'validate_regimen_exposures',
]
