"""
exceptions.py

Error kinds raised (or recorded) by the pipeline stages.

  • SchemaError             – raw table does not match the expected fields; fatal.
  • ImputationFallbackWarning – age regression skipped, median used instead.
  • ImputationError         – no observed value to impute from at all.
  • MalformedRecordError    – name / cabin string does not parse; aborts the batch.
  • FitFailure              – one grid point failed to fit (recorded, never raised).
  • FamilyFitError          – every grid point of a model family failed.
  • AllFamiliesFailedError  – every model family failed.
  • DegenerateFeatureError  – sanitising left no predictor columns.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence


class PipelineError(Exception):
    """Base class for every fatal pipeline error."""


class SchemaError(PipelineError, ValueError):
    def __init__(self, message: str, failures: Optional[List[str]] = None):
        super().__init__(message)
        self.failures = failures or []


class ImputationFallbackWarning(UserWarning):
    pass


class ImputationError(PipelineError, ValueError):
    pass


class MalformedRecordError(PipelineError, ValueError):
    def __init__(self, message: str, column: str, row_ids: Sequence[Any] = ()):
        super().__init__(message)
        self.column = column
        self.row_ids = list(row_ids)


class DegenerateFeatureError(PipelineError, ValueError):
    pass


@dataclass(frozen=True)
class FitFailure:
    """One grid point (on one fold, or on the full-data refit) that did not fit."""
    family: str
    params: Dict[str, Any]
    fold: Optional[int]
    message: str


class FamilyFitError(PipelineError, RuntimeError):
    def __init__(self, family: str, failures: Sequence[FitFailure] = ()):
        super().__init__(
            f"Every grid point of model family '{family}' failed to fit "
            f"({len(failures)} recorded failures)")
        self.family = family
        self.failures = list(failures)


class AllFamiliesFailedError(PipelineError, RuntimeError):
    def __init__(self, errors: Dict[str, Exception]):
        super().__init__(
            f"All model families failed: {sorted(errors)}")
        self.errors = dict(errors)
