# Cropwise prediction workflow
"""
Workflow module for the crop recommendation cycle.

Exports:
- PredictionWorkflow: state machine from weather lookup to enriched candidates
- validate_inputs: form values to a SoilReading, or a ValidationError
- build_candidates: ranked crop names to CropCandidate placeholders
"""
from .candidates import build_candidates, nutrient_comparison, placeholder_details
from .orchestrator import (
    PredictionWorkflow,
    StageFailure,
    WorkflowState,
    create_workflow,
)
from .validator import missing_fields, validate_inputs

__all__ = [
    'PredictionWorkflow',
    'StageFailure',
    'WorkflowState',
    'create_workflow',
    'build_candidates',
    'nutrient_comparison',
    'placeholder_details',
    'missing_fields',
    'validate_inputs',
]
