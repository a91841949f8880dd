"""
pipeline.py

End-to-end driver:

    raw table → schema + row_id → MissingImputer → FeatureDeriver
      → FeatureSanitizer → FoldPlanner → train_families (shared folds)
      → LeaderboardBuilder → final refit of the top model → ImportanceAnalyzer

Every stage runs under the `monitor` decorator.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import pandas as pd

from passenger_cv.config import PipelineConfig
from passenger_cv.Stage_1_Ingestion.Data_Schema import assign_row_ids, normalize_columns, validate_raw
from passenger_cv.Stage_2_Preprocessor.Missing_Imputer import MissingImputer
from passenger_cv.Stage_3_Feature_Engineering.Feature_Construction import FeatureDeriver
from passenger_cv.Stage_3_Feature_Engineering.Feature_Sanitizer import FeatureSanitizer, ModelingFrame
from passenger_cv.Stage_4_Split_data.Fold_Planner import FoldAssignment, FoldPlanner
from passenger_cv.Stage_5_Training.Model_Trainer import TrainedModel, train_families
from passenger_cv.Stage_6_Evaluation.Leaderboard import Leaderboard, LeaderboardBuilder
from passenger_cv.Stage_7_Interpretation.Importance_Analyzer import ImportanceAnalyzer
from passenger_cv.utils.monitor import monitor
from passenger_cv.utils.perfkit import resolve_n_jobs

log = logging.getLogger("passenger_cv.pipeline")


@dataclass
class PipelineResult:
    frame: ModelingFrame
    folds: FoldAssignment
    trained: Dict[str, TrainedModel]
    family_errors: Dict[str, Exception]
    leaderboard: Leaderboard
    analyzer: ImportanceAnalyzer
    importance: pd.Series
    imputation_report: Dict[str, Any] = field(default_factory=dict)

    @property
    def best_model(self) -> TrainedModel:
        return self.trained[self.leaderboard.best.model_name]


@monitor(name="ingest", track_input_size=True)
def ingest(raw: pd.DataFrame) -> pd.DataFrame:
    return assign_row_ids(validate_raw(normalize_columns(raw)))


@monitor(name="impute", log_result=True)
def impute(df: pd.DataFrame, config: PipelineConfig):
    imputer = MissingImputer(min_age_rows=config.min_age_rows, cv_folds=config.age_cv_folds,
                             random_state=config.seed, verbose=True)
    return imputer.fit_transform(df), imputer.report


@monitor(name="derive_features", log_result=True)
def derive_features(df: pd.DataFrame) -> pd.DataFrame:
    return FeatureDeriver().fit_transform(df)


@monitor(name="sanitize", log_result=True)
def sanitize(df: pd.DataFrame, config: PipelineConfig) -> ModelingFrame:
    return FeatureSanitizer(
        rare_min_count=config.rare_min_count,
        nzv_freq_cut=config.nzv_freq_cut,
        nzv_unique_cut=config.nzv_unique_cut,
        leakage_columns=config.leakage_columns,
        identifier_columns=config.identifier_columns,
        categorical_overrides=config.categorical_overrides,
    ).transform(df)


@monitor(name="plan_folds")
def plan_folds(frame: ModelingFrame, config: PipelineConfig) -> FoldAssignment:
    return FoldPlanner(k=config.n_folds, seed=config.seed).plan(frame)


@monitor(name="train", track_memory=True)
def train(frame: ModelingFrame, folds: FoldAssignment, config: PipelineConfig):
    return train_families(frame, folds, config.families, grids=config.grids,
                          seed=config.seed, n_jobs=config.n_jobs)


@monitor(name="leaderboard")
def rank(trained: Dict[str, TrainedModel], config: PipelineConfig) -> Leaderboard:
    return LeaderboardBuilder(config.baseline_family, config.alpha).build(trained)


@monitor(name="interpret")
def interpret(frame: ModelingFrame, best: TrainedModel, config: PipelineConfig) -> ImportanceAnalyzer:
    return ImportanceAnalyzer(
        seed=config.seed,
        n_repeats=config.permutation_repeats,
        percentiles=config.pd_percentiles,
        grid_resolution=config.pd_grid_resolution,
        n_jobs=resolve_n_jobs(config.n_jobs),
    ).fit_final(frame, best)


def run_pipeline(raw: pd.DataFrame, config: Optional[PipelineConfig] = None) -> PipelineResult:
    config = config or PipelineConfig()
    log.info(f"Running pipeline: {len(config.families)} families, "
             f"{config.n_folds} folds, seed={config.seed}")

    df = ingest(raw)
    df, report = impute(df, config)
    df = derive_features(df)
    frame = sanitize(df, config)
    folds = plan_folds(frame, config)

    trained, errors = train(frame, folds, config)
    board = rank(trained, config)

    best = trained[board.best.model_name]
    analyzer = interpret(frame, best, config)
    importance = analyzer.permutation_importance()

    log.info(f"Top model: {best.family} {best.params} "
             f"(mean CV accuracy {best.mean_accuracy:.4f})")
    return PipelineResult(
        frame=frame,
        folds=folds,
        trained=trained,
        family_errors=errors,
        leaderboard=board,
        analyzer=analyzer,
        importance=importance,
        imputation_report=report,
    )
