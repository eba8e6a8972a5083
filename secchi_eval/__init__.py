# secchi_eval/__init__.py
from __future__ import annotations

from .data import Dataset, read_dataset
from .errors import (
    DivisionByZeroError,
    EmptyInputError,
    EvaluationError,
    InvalidSplitError,
    SchemaMismatchError,
)
from .splitters import GroupExclusion, GroupShuffle, RandomFraction, Split, SplitPlan, split
from .metrics import Metrics, PredictionSet, mape, rmse, score
from .models import EstimatorModel, FittedModel, RegressionModel, default_models, make_model
from .harness import EvaluationResult, compare_models, evaluate
