"""
Regimen Exposures
=================

Finds periods during which a person is exposed to exactly the set of drug
ingredients that defines a regimen.
"""

from .build_regimens import (
    RegimenPipelineResult,
    run_pipeline,
    create_regimens,
)

__version__ = "0.1.0"

__all__ = [
    'RegimenPipelineResult',
    'run_pipeline',
    'create_regimens',
]
