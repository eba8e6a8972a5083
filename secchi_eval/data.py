# secchi_eval/data.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd
from pandas.api.types import is_numeric_dtype

from .config import DEFAULT_DATA_PATH
from .errors import SchemaMismatchError


logger = logging.getLogger(__name__)

ROW_ID = "row_id"


class Dataset:
    """
    Immutable in-memory table of samples.

    Wraps a pandas DataFrame whose index holds a stable row id (the row's position in the
    originally loaded table). Every operation returns a new Dataset; the wrapped frame is
    copied on the way in and on the way out so callers can never mutate it.
    """

    __slots__ = ("_frame",)

    def __init__(self, frame: pd.DataFrame) -> None:
        cols = [c for c in frame.columns]
        if len(set(cols)) != len(cols):
            dup = sorted({str(c) for c in cols if cols.count(c) > 1})
            raise SchemaMismatchError(f"Dataset field names must be unique; duplicated: {dup}")
        non_str = [c for c in cols if not isinstance(c, str)]
        if non_str:
            raise SchemaMismatchError(f"Dataset field names must be strings; found: {non_str}")
        if not frame.index.is_unique:
            dup_ids = frame.index[frame.index.duplicated()].unique().tolist()[:10]
            raise SchemaMismatchError(f"Dataset row ids must be unique; duplicated: {dup_ids}")
        object.__setattr__(self, "_frame", frame.copy())

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("Dataset is immutable")

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "Dataset":
        """Wrap a freshly loaded frame, assigning row ids 0..N-1 in row order."""
        frame = df.reset_index(drop=True)
        frame.index = pd.RangeIndex(len(frame), name=ROW_ID)
        return cls(frame)

    # -----------------------------
    # Introspection
    # -----------------------------
    def __len__(self) -> int:
        return int(len(self._frame))

    def __repr__(self) -> str:
        return f"Dataset(n_rows={len(self)}, fields={self.fields})"

    @property
    def fields(self) -> List[str]:
        return list(self._frame.columns)

    @property
    def row_ids(self) -> np.ndarray:
        return self._frame.index.to_numpy(copy=True)

    def has_field(self, name: str) -> bool:
        return name in self._frame.columns

    def is_numeric(self, name: str) -> bool:
        self._require([name])
        return bool(is_numeric_dtype(self._frame[name])) and not self._frame[name].dtype == bool

    def column(self, name: str) -> np.ndarray:
        self._require([name])
        return self._frame[name].to_numpy(copy=True)

    def to_frame(self) -> pd.DataFrame:
        return self._frame.copy()

    # -----------------------------
    # Derivations (always new Datasets)
    # -----------------------------
    def take(self, row_ids: Iterable[Any]) -> "Dataset":
        """Select rows by row id, in the order given."""
        ids = list(row_ids)
        return Dataset(self._frame.loc[ids])

    def where(self, mask: Any) -> "Dataset":
        """Select rows by a boolean mask aligned with the current row order."""
        m = np.asarray(mask, dtype=bool)
        if m.shape != (len(self),):
            raise ValueError(f"Mask length {m.shape} does not match dataset length {len(self)}.")
        return Dataset(self._frame.loc[m])

    def project(self, fields: Sequence[str]) -> "Dataset":
        """Keep only `fields`, in the order given."""
        self._require(fields)
        return Dataset(self._frame[list(fields)])

    def dropna(self, fields: Optional[Sequence[str]] = None) -> "Dataset":
        """Drop rows with a missing value in any of `fields` (all fields when None)."""
        subset = list(fields) if fields is not None else None
        if subset is not None:
            self._require(subset)
        return Dataset(self._frame.dropna(subset=subset))

    def _require(self, fields: Iterable[str]) -> None:
        missing = [f for f in fields if f not in self._frame.columns]
        if missing:
            raise SchemaMismatchError(f"Missing required fields: {missing} (available: {self.fields})")


def read_dataset(csv_path: str = DEFAULT_DATA_PATH) -> Dataset:
    """
    Read a reflectance/SDD CSV into a Dataset.

    Relative paths are resolved from the current working directory.
    """
    p = Path(csv_path)
    if not p.is_absolute():
        p = (Path.cwd() / p).resolve()
    if not p.exists():
        raise FileNotFoundError(f"Dataset not found at {p}.")

    df = pd.read_csv(p)
    logger.info("Loaded %d rows x %d fields from %s", len(df), len(df.columns), p)
    return Dataset.from_frame(df)


def validate_required_fields(dataset: Dataset, required: Sequence[str]) -> None:
    missing = sorted(set(required) - set(dataset.fields))
    if missing:
        raise SchemaMismatchError(f"Missing required fields: {missing}")


def infer_feature_fields(dataset: Dataset, target: str, exclude: Sequence[str] = ()) -> List[str]:
    """Every numeric field except the target and `exclude`, in dataset order."""
    skip = {target, *exclude}
    feats = [f for f in dataset.fields if f not in skip and dataset.is_numeric(f)]
    if not feats:
        raise SchemaMismatchError(
            f"No numeric feature fields left after excluding {sorted(skip)}; pass features explicitly."
        )
    return feats


def coerce_group_value(dataset: Dataset, group_field: str, raw: Any) -> Any:
    """
    Convert a CLI-provided group value to the dtype of `group_field`.

    "5" becomes 5 for an integer column and 5.0 for a float column; string columns keep the raw text.
    """
    validate_required_fields(dataset, [group_field])
    if not dataset.is_numeric(group_field) or not isinstance(raw, str):
        return raw
    try:
        val = float(raw)
    except ValueError:
        return raw
    kind = dataset.column(group_field).dtype.kind
    if kind in "iu" and val.is_integer():
        return int(val)
    return val
