"""
Joint error-model learning across samples.

The learner is an explicit state machine:

    INITIALIZING -> PARTITIONING -> AGGREGATING -+-> PARTITIONING
                                                 +-> CONVERGED
                                                 +-> ITERATION_CAP_REACHED

PARTITIONING runs the Partition Engine on every sample with the current
model. AGGREGATING is the only barrier: it pools the substitution counts
of every successful sample, re-estimates the model and compares it with
the current one. Models are replaced wholesale, never updated in place.

Once a terminal state is reached the model is frozen and one final pass
produces the authoritative variants.
"""

import logging
import warnings
from typing import Dict, List, Mapping, Optional, Sequence

from .config import DenoiseConfig
from .error_model import ErrorModel, SubstitutionCounts
from .exceptions import ConfigurationError, DenoiseError, NonConvergenceWarning
from .models import DenoiseResult, IterationRecord, LearnerState, SampleResult, UniqueSequence
from .parallel import PassOutcome, partition_samples

logger = logging.getLogger(__name__)


class ErrorModelLearner:
    """
    Alternate sample inference and error re-estimation until convergence.

    Args:
        samples: Sample name -> unique sequences
        config: Denoising configuration
        initial_model: Starting model; default is ErrorModel.initialize
    """

    def __init__(
        self,
        samples: Mapping[str, Sequence[UniqueSequence]],
        config: Optional[DenoiseConfig] = None,
        initial_model: Optional[ErrorModel] = None,
    ):
        if not samples:
            raise ConfigurationError("No samples supplied")
        self.samples = {name: list(uniques) for name, uniques in samples.items()}
        self.config = config if config is not None else DenoiseConfig()
        self.config.validate()

        self.state = LearnerState.INITIALIZING
        self.error_model: Optional[ErrorModel] = initial_model
        self.iteration = 0
        self.history: List[IterationRecord] = []
        self.failures: Dict[str, str] = {}
        self.last_change: Optional[float] = None
        self._pass: Optional[PassOutcome] = None

    # =========================================================================
    # State machine
    # =========================================================================

    @property
    def done(self) -> bool:
        return self.state.is_terminal

    def step(self) -> LearnerState:
        """Perform exactly one state transition and return the new state."""
        if self.state is LearnerState.INITIALIZING:
            self._initialize()
            self.state = LearnerState.PARTITIONING
        elif self.state is LearnerState.PARTITIONING:
            self._partition()
            self.state = LearnerState.AGGREGATING
        elif self.state is LearnerState.AGGREGATING:
            self.state = self._aggregate()
        return self.state

    def _initialize(self) -> None:
        if self.error_model is None:
            cfg = self.config
            self.error_model = ErrorModel.initialize(
                self.samples,
                max_quality=cfg.max_quality,
                quality_bucket_count=cfg.quality_bucket_count,
                pseudocount=cfg.pseudocount,
            )
        logger.info(f"Initial error model: {self.error_model}")

    def _partition(self) -> None:
        with warnings.catch_warnings():
            # intermediate passes are not results
            warnings.simplefilter("ignore", NonConvergenceWarning)
            outcome = partition_samples(self.samples, self.error_model, self.config)
        self.failures = dict(outcome.failures)
        if outcome.n_succeeded == 0:
            raise DenoiseError(
                f"All {len(self.samples)} samples failed in iteration {self.iteration + 1}: "
                f"{self.failures}"
            )
        self._pass = outcome

    def _aggregate(self) -> LearnerState:
        cfg = self.config
        outcome = self._pass
        pooled = SubstitutionCounts.merge(
            (r.counts for r in outcome.results.values()),
            self.error_model.max_quality,
            self.error_model.n_buckets,
        )
        candidate = self.error_model.reestimate(
            pooled, pseudocount=cfg.pseudocount, enforce_monotonicity=cfg.enforce_monotonicity
        )
        change = self.error_model.max_change(candidate)
        self.iteration += 1
        self.last_change = change
        self.error_model = candidate
        self._pass = None

        record = IterationRecord(
            iteration=self.iteration,
            max_change=change,
            n_samples=outcome.n_succeeded,
            n_failed=len(outcome.failures),
            n_variants=sum(len(r.variants) for r in outcome.results.values()),
            n_substitutions=pooled.substitutions,
            mean_error_rate=candidate.mean_error_rate(),
        )
        self.history.append(record)
        logger.info(
            f"Iteration {self.iteration}: max change {change:.3g}, "
            f"{record.n_variants} variants, mean error rate {record.mean_error_rate:.3g}"
        )

        if change < cfg.convergence_tolerance:
            return LearnerState.CONVERGED
        if self.iteration >= cfg.max_iterations:
            return LearnerState.ITERATION_CAP_REACHED
        return LearnerState.PARTITIONING

    # =========================================================================
    # Driving
    # =========================================================================

    def learn(self) -> ErrorModel:
        """Run to a terminal state and return the frozen model."""
        while not self.done:
            self.step()
        if self.state is LearnerState.ITERATION_CAP_REACHED:
            warnings.warn(
                f"Error model did not converge after {self.iteration} iterations "
                f"(last change {self.last_change:.3g} >= {self.config.convergence_tolerance:g})",
                NonConvergenceWarning,
            )
        self.error_model = self.error_model.freeze()
        return self.error_model

    def run(self) -> DenoiseResult:
        """Learn the error model, then denoise every sample with it."""
        model = self.learn()
        return final_pass(
            self.samples,
            model,
            self.config,
            learning_converged=self.state is LearnerState.CONVERGED,
            iterations=self.iteration,
            history=self.history,
        )


def final_pass(
    samples: Mapping[str, Sequence[UniqueSequence]],
    error_model: ErrorModel,
    config: Optional[DenoiseConfig] = None,
    learning_converged: bool = True,
    iterations: int = 0,
    history: Optional[List[IterationRecord]] = None,
) -> DenoiseResult:
    """Denoise every sample with a frozen model; this output is authoritative."""
    config = config if config is not None else DenoiseConfig()
    model = error_model if error_model.frozen else error_model.freeze()
    outcome = partition_samples(samples, model, config)
    if outcome.n_succeeded == 0:
        raise DenoiseError(f"All {len(samples)} samples failed: {outcome.failures}")

    results: Dict[str, SampleResult] = outcome.results
    result = DenoiseResult(
        samples=results,
        failures=outcome.failures,
        error_model=model,
        learning_converged=learning_converged,
        iterations=iterations,
        history=list(history or []),
    )
    logger.info(
        f"Denoised {len(results)} samples ({len(outcome.failures)} failed): "
        f"{sum(len(r.variants) for r in results.values())} variants"
        f"{'' if result.converged else ' [best-effort, not converged]'}"
    )
    return result


def learn_errors(
    samples: Mapping[str, Sequence[UniqueSequence]],
    config: Optional[DenoiseConfig] = None,
) -> ErrorModel:
    """Learn a frozen error model jointly from all samples."""
    return ErrorModelLearner(samples, config).learn()


def denoise(
    samples: Mapping[str, Sequence[UniqueSequence]],
    error_model: Optional[ErrorModel] = None,
    config: Optional[DenoiseConfig] = None,
) -> DenoiseResult:
    """
    Infer sequence variants for every sample.

    Args:
        samples: Sample name -> unique sequences
        error_model: Pre-learned model; when given only the final pass runs
        config: Denoising configuration

    Returns:
        DenoiseResult
    """
    if not samples:
        raise ConfigurationError("No samples supplied")
    if error_model is not None:
        config = config if config is not None else DenoiseConfig()
        config.validate()
        return final_pass(samples, error_model, config)
    return ErrorModelLearner(samples, config).run()
