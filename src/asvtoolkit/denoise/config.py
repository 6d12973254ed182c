"""
Denoising configuration.

Parameter groups:
A. Learning loop: max_iterations, convergence_tolerance
B. Partition engine: max_partition_iterations, omega_a, significance,
   min_fold, min_hamming, max_shuffles
C. Error model: quality_bucket_count, max_quality, pseudocount,
   enforce_monotonicity
D. Alignment: indel_probability
E. Execution: threads
"""

import json
from dataclasses import asdict, dataclass, fields
from typing import List, Optional

import yaml

from asvtoolkit.utils.config import DEFAULT_THREADS
from .exceptions import ConfigurationError


@dataclass
class DenoiseConfig:
    """Tunables for error learning and sample inference."""
    # A. learning loop
    max_iterations: int = 10
    convergence_tolerance: float = 1e-4

    # B. partition engine
    max_partition_iterations: int = 1000
    omega_a: float = 1e-40              # admission threshold
    significance: str = "poisson"
    min_fold: float = 1.0
    min_hamming: int = 1
    max_shuffles: int = 10

    # C. error model
    quality_bucket_count: Optional[int] = None   # None: one bucket per integer quality
    max_quality: Optional[int] = None            # None: highest observed quality
    pseudocount: float = 1.0
    enforce_monotonicity: bool = False

    # D. alignment (only used when lengths differ)
    indel_probability: float = 1e-4     # per gap column, in lambda

    # E. execution
    threads: int = DEFAULT_THREADS

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "DenoiseConfig":
        """Build a config from a dict; unknown keys are a ConfigurationError."""
        if d is None:
            d = {}
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(d) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration options: {unknown}")
        config = cls(**d)
        config.validate()
        return config

    @classmethod
    def from_yaml(cls, path: str) -> "DenoiseConfig":
        with open(path, "r") as f:
            d = yaml.safe_load(f)
        return cls.from_dict(d or {})

    def to_yaml(self, path: str):
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False)

    @classmethod
    def from_json(cls, path: str) -> "DenoiseConfig":
        with open(path, "r") as f:
            d = json.load(f)
        return cls.from_dict(d)

    def to_json(self, path: str):
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    def replace(self, **changes) -> "DenoiseConfig":
        """Copy with some options changed; None values are ignored."""
        d = self.to_dict()
        d.update({k: v for k, v in changes.items() if v is not None})
        return DenoiseConfig.from_dict(d)

    # =========================================================================
    # Validation
    # =========================================================================

    def problems(self) -> List[str]:
        """Return a list of invalid settings (empty when valid)."""
        problems = []
        if self.max_iterations < 1:
            problems.append("max_iterations must be >= 1")
        if self.max_partition_iterations < 1:
            problems.append("max_partition_iterations must be >= 1")
        if not self.convergence_tolerance >= 0:
            problems.append("convergence_tolerance must be >= 0")
        if not 0 < self.omega_a < 1:
            problems.append("omega_a must lie in (0, 1)")
        if self.min_fold < 0:
            problems.append("min_fold must be >= 0")
        if self.min_hamming < 0:
            problems.append("min_hamming must be >= 0")
        if self.max_shuffles < 1:
            problems.append("max_shuffles must be >= 1")
        if self.quality_bucket_count is not None and self.quality_bucket_count < 1:
            problems.append("quality_bucket_count must be >= 1")
        if self.max_quality is not None and self.max_quality < 0:
            problems.append("max_quality must be >= 0")
        if self.pseudocount < 0:
            problems.append("pseudocount must be >= 0")
        if not 0 < self.indel_probability < 1:
            problems.append("indel_probability must lie in (0, 1)")
        if self.threads < 0:
            problems.append("threads must be >= 0")

        from .significance import available_policies
        if self.significance not in available_policies():
            problems.append(f"unknown significance policy: {self.significance}")
        return problems

    def validate(self) -> None:
        problems = self.problems()
        if problems:
            raise ConfigurationError("Invalid configuration: " + "; ".join(problems))


def get_default_config() -> DenoiseConfig:
    return DenoiseConfig()
