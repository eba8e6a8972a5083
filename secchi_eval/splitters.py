# secchi_eval/splitters.py
"""
Train/test splitting strategies.

A split plan is a small frozen dataclass describing *how* to partition a Dataset;
`split(dataset, plan)` is the single entry point that interprets it.

RandomFraction
  Uniform row sampling. Unsound when rows are spatially or temporally correlated
  (repeated visits to the same site can land on both sides of the split), which
  inflates apparent accuracy. Kept because it is the common first baseline.

GroupExclusion
  train = rows of one spatial partition, test = the other partitions. This holds a
  single group out for *training*, which is the reverse of a conventional holdout;
  the behavior is kept as-is so published numbers can be reproduced.

GroupShuffle
  Conventional group-aware holdout: whole groups are sampled into the test set.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
import numbers
import re
from typing import Any, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from sklearn.model_selection import GroupShuffleSplit, ShuffleSplit

from .data import Dataset
from .errors import InvalidSplitError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RandomFraction:
    fraction: float
    seed: int


@dataclass(frozen=True)
class GroupExclusion:
    group_field: str
    excluded_group_value: Any
    # None => every other group goes to test.
    test_group_values: Optional[Tuple[Any, ...]] = None


@dataclass(frozen=True)
class GroupShuffle:
    group_field: str
    fraction: float
    seed: int


SplitPlan = Union[RandomFraction, GroupExclusion, GroupShuffle]


@dataclass(frozen=True)
class Split:
    train: Dataset
    test: Dataset
    plan: SplitPlan


_UNSAFE_LABEL_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def safe_label(text: str) -> str:
    """Replace characters that are not safe in a file name (path separators included) with "_"."""
    return _UNSAFE_LABEL_CHARS.sub("_", str(text))


def describe_plan(plan: SplitPlan) -> str:
    """Short, stable label used in logs and report file names."""
    if isinstance(plan, RandomFraction):
        label = f"random_f{plan.fraction:g}_s{plan.seed}"
    elif isinstance(plan, GroupExclusion):
        label = f"group_excl_{plan.group_field}_{plan.excluded_group_value}"
    elif isinstance(plan, GroupShuffle):
        label = f"group_shuffle_{plan.group_field}_f{plan.fraction:g}_s{plan.seed}"
    else:
        raise InvalidSplitError(f"Unknown split plan: {type(plan).__name__}")
    return safe_label(label)


def _validate_fraction(fraction: Any) -> float:
    if isinstance(fraction, bool) or not isinstance(fraction, numbers.Real):
        raise InvalidSplitError(f"fraction must be a real number, got {fraction!r}")
    f = float(fraction)
    if not (0.0 < f < 1.0):
        raise InvalidSplitError(f"fraction must lie strictly between 0 and 1, got {f}")
    return f


def _validate_seed(seed: Any) -> int:
    if isinstance(seed, bool) or not isinstance(seed, numbers.Integral):
        raise InvalidSplitError(f"seed must be an explicit integer, got {seed!r}")
    if int(seed) < 0:
        raise InvalidSplitError(f"seed must be non-negative, got {seed}")
    return int(seed)


def _validate_group_field(dataset: Dataset, group_field: str) -> None:
    if not dataset.has_field(group_field):
        raise InvalidSplitError(f"Group field '{group_field}' is not a dataset field (available: {dataset.fields})")


def _split_random(dataset: Dataset, plan: RandomFraction) -> Split:
    f = _validate_fraction(plan.fraction)
    seed = _validate_seed(plan.seed)

    ids = dataset.row_ids
    n = int(ids.size)
    n_test = int(math.floor(f * n))

    if n_test == 0:
        # ShuffleSplit rejects an empty test set; everything trains.
        logger.warning("RandomFraction(fraction=%s) on %d rows selects no test rows.", f, n)
        return Split(train=dataset, test=dataset.take([]), plan=plan)

    splitter = ShuffleSplit(n_splits=1, test_size=n_test, random_state=seed)
    train_pos, test_pos = next(splitter.split(np.zeros(n)))

    # Keep dataset order inside each part.
    train_ids = ids[np.sort(np.asarray(train_pos, dtype=int))]
    test_ids = ids[np.sort(np.asarray(test_pos, dtype=int))]
    return Split(train=dataset.take(train_ids), test=dataset.take(test_ids), plan=plan)


def _split_group_exclusion(dataset: Dataset, plan: GroupExclusion) -> Split:
    _validate_group_field(dataset, plan.group_field)

    groups = pd.Series(dataset.column(plan.group_field))
    present = groups.notna().to_numpy()
    is_excluded = (groups == plan.excluded_group_value).to_numpy() & present

    if plan.test_group_values is None:
        is_test = present & ~is_excluded
    else:
        wanted = [v for v in plan.test_group_values if v != plan.excluded_group_value]
        is_test = groups.isin(wanted).to_numpy() & present & ~is_excluded

    n_dropped = int(len(dataset) - is_excluded.sum() - is_test.sum())
    if n_dropped:
        logger.warning(
            "GroupExclusion on '%s' dropped %d rows whose group is missing or not selected.",
            plan.group_field,
            n_dropped,
        )
    if not is_excluded.any():
        logger.warning(
            "GroupExclusion: no rows have %s == %r; the training split is empty.",
            plan.group_field,
            plan.excluded_group_value,
        )

    return Split(train=dataset.where(is_excluded), test=dataset.where(is_test), plan=plan)


def _split_group_shuffle(dataset: Dataset, plan: GroupShuffle) -> Split:
    _validate_group_field(dataset, plan.group_field)
    f = _validate_fraction(plan.fraction)
    seed = _validate_seed(plan.seed)

    kept = dataset.dropna([plan.group_field])
    if len(kept) < len(dataset):
        logger.warning(
            "GroupShuffle dropped %d rows with a missing '%s' value.", len(dataset) - len(kept), plan.group_field
        )

    groups = kept.column(plan.group_field)
    n_groups = int(pd.Series(groups).nunique())
    if n_groups < 2:
        raise InvalidSplitError(
            f"GroupShuffle requires at least 2 distinct '{plan.group_field}' groups, found {n_groups}."
        )

    ids = kept.row_ids
    splitter = GroupShuffleSplit(n_splits=1, test_size=f, random_state=seed)
    train_pos, test_pos = next(splitter.split(np.zeros(ids.size), groups=groups))

    train_ids = ids[np.sort(np.asarray(train_pos, dtype=int))]
    test_ids = ids[np.sort(np.asarray(test_pos, dtype=int))]
    return Split(train=kept.take(train_ids), test=kept.take(test_ids), plan=plan)


def split(dataset: Dataset, plan: SplitPlan) -> Split:
    """Partition `dataset` into (train, test) according to `plan`."""
    if isinstance(plan, RandomFraction):
        out = _split_random(dataset, plan)
    elif isinstance(plan, GroupExclusion):
        out = _split_group_exclusion(dataset, plan)
    elif isinstance(plan, GroupShuffle):
        out = _split_group_shuffle(dataset, plan)
    else:
        raise InvalidSplitError(f"Unknown split plan: {type(plan).__name__}")

    logger.info("Split %s: n_train=%d n_test=%d", describe_plan(plan), len(out.train), len(out.test))
    return out


def group_values(dataset: Dataset, group_field: str) -> Sequence[Any]:
    """Distinct non-missing group values, sorted when comparable."""
    _validate_group_field(dataset, group_field)
    vals = pd.Series(dataset.column(group_field)).dropna().unique().tolist()
    try:
        return sorted(vals)
    except TypeError:
        return vals
