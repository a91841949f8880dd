"""passenger_cv: cross-validated model comparison on historical passenger records."""
from passenger_cv.config import PipelineConfig
from passenger_cv.pipeline import PipelineResult, run_pipeline

__all__ = ["PipelineConfig", "PipelineResult", "run_pipeline"]
__version__ = "0.1.0"
