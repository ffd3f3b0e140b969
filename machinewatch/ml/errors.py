"""
errors.py — Pipeline Error Taxonomy
====================================

Every failure the pipeline surfaces to its callers derives from
PipelineError, so the HTTP layer can map them to status codes in one place.
"""


class PipelineError(Exception):
    """Base class for all anomaly-pipeline errors."""


class ValidationError(PipelineError):
    """A reading or an option is malformed (wrong channels, non-numeric value)."""


class InsufficientDataError(PipelineError):
    """Fewer valid rows than config.MIN_TRAINING_ROWS were given to training."""

    def __init__(self, valid_rows: int, required: int):
        self.valid_rows = valid_rows
        self.required = required
        super().__init__(
            f"Only {valid_rows} valid rows, need at least {required} to train"
        )


class ModelNotFoundError(PipelineError):
    """No persisted or in-memory model is available."""


class TrainingFailure(PipelineError):
    """Numerical divergence or a library failure aborted a training run."""


class TrainingInProgressError(TrainingFailure):
    """A training run was requested while another one is still running."""


class ModelPersistenceError(PipelineError):
    """Saving the model artifact failed; the previous artifact is untouched."""
