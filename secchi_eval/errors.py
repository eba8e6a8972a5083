# secchi_eval/errors.py
from __future__ import annotations


class EvaluationError(ValueError):
    """Base class for every error raised by the evaluation harness."""


class InvalidSplitError(EvaluationError):
    """Malformed split plan, or a plan that names a field the dataset does not have."""


class EmptyInputError(EvaluationError):
    """Scoring (or fitting) was asked to work on zero rows."""


class DivisionByZeroError(EvaluationError):
    """MAPE requested with an observed value of exactly zero under the 'raise' policy."""


class SchemaMismatchError(EvaluationError):
    """Requested field absent from the dataset, or prediction count differs from row count."""
