# secchi_eval/config.py
from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import List, Optional


# -----------------------------
# Default settings (can be overridden via CLI/env)
# -----------------------------
DEFAULT_SEED: int = int(os.environ.get("SEED", "42"))
DEFAULT_N_JOBS: int = int(os.environ.get("N_JOBS", "4"))

DEFAULT_DATA_PATH: str = str(os.environ.get("SDD_DATA", "./sdd_reflectance.csv"))
DEFAULT_OUTDIR: str = str(os.environ.get("SDD_OUTDIR", "outputs"))

# Secchi Disk Depth is the response; "part" is the spatial partition id of a sampling site.
DEFAULT_TARGET: str = str(os.environ.get("SDD_TARGET", "SDD"))
DEFAULT_GROUP_FIELD: str = str(os.environ.get("SDD_GROUP_FIELD", "part"))
DEFAULT_EXCLUDED_GROUP: str = str(os.environ.get("SDD_EXCLUDED_GROUP", "5"))
DEFAULT_TEST_FRACTION: float = float(os.environ.get("SDD_TEST_FRACTION", "0.2"))

ZERO_POLICIES = ("raise", "skip", "epsilon")
DEFAULT_ZERO_POLICY: str = str(os.environ.get("SDD_ZERO_POLICY", "raise"))

SPLIT_KINDS = ("random", "group-exclusion", "group-shuffle")
MODEL_KINDS = ("baseline", "linear", "random_forest", "xgboost")


@dataclass(frozen=True)
class EvaluationConfig:
    """Settings for one CLI run.

    An empty `features` list means "every numeric field except the target and the group field".
    """

    data: str = DEFAULT_DATA_PATH
    outdir: str = DEFAULT_OUTDIR
    target: str = DEFAULT_TARGET
    features: List[str] = field(default_factory=list)

    seed: int = DEFAULT_SEED
    n_jobs: int = DEFAULT_N_JOBS

    split: str = "random"
    fraction: float = DEFAULT_TEST_FRACTION
    group_field: str = DEFAULT_GROUP_FIELD
    excluded_group: str = DEFAULT_EXCLUDED_GROUP

    model: str = "random_forest"
    zero_policy: str = DEFAULT_ZERO_POLICY

    save_model: bool = False
    plot: bool = False
    include_group_shuffle: bool = False

    def __post_init__(self) -> None:
        if self.split not in SPLIT_KINDS:
            raise ValueError(f"Unknown split kind {self.split!r}; expected one of {list(SPLIT_KINDS)}")
        if self.model not in MODEL_KINDS:
            raise ValueError(f"Unknown model {self.model!r}; expected one of {list(MODEL_KINDS)}")
        if self.zero_policy not in ZERO_POLICIES:
            raise ValueError(f"Unknown zero policy {self.zero_policy!r}; expected one of {list(ZERO_POLICIES)}")
        if self.target in self.features:
            raise ValueError(f"Target '{self.target}' must not be listed as a feature.")


def parse_feature_list(raw: Optional[str]) -> List[str]:
    """Split a comma separated CLI value into field names, dropping blanks."""
    if not raw:
        return []
    return [c.strip() for c in str(raw).split(",") if c.strip()]
