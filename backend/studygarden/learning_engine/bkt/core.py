"""
BKT Core Math - Pure functions for Bayesian Knowledge Tracing.

Implements the standard 4-parameter BKT model (Corbett & Anderson):
- p_init: Prior probability of mastery, P(L0)
- p_transit: Probability of learning after an opportunity, P(T)
- p_guess: Probability of answering correctly without knowing, P(G)
- p_slip: Probability of answering wrongly despite knowing, P(S)

Every observation is a Bayesian update on the evidence followed by the
learning transition. States are immutable; each update returns a new state.
Parameters outside [0, 1] are rejected, never clamped. Results are only
clamped when float drift pushes them past the bounds by BKT_DRIFT_EPSILON.
"""

import math
from collections.abc import Iterable
from dataclasses import dataclass, replace
from fractions import Fraction
from functools import reduce
from typing import Any

from studygarden.core.app_exceptions import (
    InvalidObservationError,
    ProbabilityDriftError,
    raise_invalid_parameter,
)
from studygarden.learning_engine.config import (
    BKT_DEFAULT_P_GUESS,
    BKT_DEFAULT_P_INIT,
    BKT_DEFAULT_P_SLIP,
    BKT_DEFAULT_P_TRANSIT,
    BKT_DRIFT_EPSILON,
)


def check_probability(name: str, value: Any) -> float:
    """
    Validate that value is a finite probability in [0, 1].

    Raises:
        InvalidParameterError: If value is not numeric, NaN/Inf, or out of range
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise_invalid_parameter(name, value)
    if not math.isfinite(value) or not (0.0 <= value <= 1.0):
        raise_invalid_parameter(name, value)
    return float(value)


def settle_probability(p: float) -> float:
    """
    Pull a computed probability back into [0, 1] if it drifted out by float error.

    Raises:
        ProbabilityDriftError: If p is NaN or outside [0, 1] by more than epsilon
    """
    if 0.0 <= p <= 1.0:
        return p
    eps = BKT_DRIFT_EPSILON.value
    if -eps <= p < 0.0:
        return 0.0
    if 1.0 < p <= 1.0 + eps:
        return 1.0
    raise ProbabilityDriftError(
        f"Probability {p!r} left [0, 1] beyond float drift",
        details={"value": repr(p), "epsilon": eps},
    )


def exact_value(p: float) -> Fraction:
    """The decimal a float was written as, e.g. 0.285 rather than 0.28499999999999998."""
    return Fraction(repr(float(p)))


def percent_half_up(value: Fraction) -> int:
    """Scale an exact probability to an integer 0-100, rounding half up."""
    return min(100, max(0, math.floor(value * 100 + Fraction(1, 2))))


def to_percent(p: float) -> int:
    """Scale a probability to an integer 0-100, rounding half up."""
    return percent_half_up(exact_value(p))


@dataclass(frozen=True)
class BKTParams:
    """The four BKT model parameters for one concept."""

    p_init: float = BKT_DEFAULT_P_INIT.value
    p_transit: float = BKT_DEFAULT_P_TRANSIT.value
    p_guess: float = BKT_DEFAULT_P_GUESS.value
    p_slip: float = BKT_DEFAULT_P_SLIP.value

    def __post_init__(self):
        for name in ("p_init", "p_transit", "p_guess", "p_slip"):
            object.__setattr__(self, name, check_probability(name, getattr(self, name)))

    def to_dict(self) -> dict[str, float]:
        return {
            "p_init": self.p_init,
            "p_transit": self.p_transit,
            "p_guess": self.p_guess,
            "p_slip": self.p_slip,
        }


@dataclass(frozen=True)
class BKTState:
    """Belief about one concept: the model parameters plus current P(known)."""

    params: BKTParams
    p_known: float

    def __post_init__(self):
        object.__setattr__(self, "p_known", check_probability("p_known", self.p_known))

    @property
    def p_learned(self) -> float:
        # Reporting alias; has no lifecycle of its own
        return self.p_known

    @property
    def mastery_level(self) -> int:
        return to_percent(self.p_known)


def initialize(params: BKTParams | None = None) -> BKTState:
    """Start a fresh belief at P(L0)."""
    params = params or BKTParams()
    return BKTState(params=params, p_known=params.p_init)


def predict_correct(p_known: float, p_slip: float, p_guess: float) -> float:
    """
    Probability of a correct answer given current mastery.

    Formula:
        P(Correct) = P(L) * (1 - P(S)) + (1 - P(L)) * P(G)
    """
    return settle_probability(p_known * (1.0 - p_slip) + (1.0 - p_known) * p_guess)


def posterior_given_obs(p_known: float, is_correct: bool, p_slip: float, p_guess: float) -> float:
    """
    Bayesian update of mastery given one observation.

    Formulas:
        P(L | Correct) = P(L)(1 - S) / [P(L)(1 - S) + (1 - P(L)) G]
        P(L | Wrong)   = P(L) S / [P(L) S + (1 - P(L))(1 - G)]

    An observation the model considers impossible (zero evidence) leaves the
    prior unchanged.
    """
    if is_correct:
        numerator = p_known * (1.0 - p_slip)
        denominator = numerator + (1.0 - p_known) * p_guess
    else:
        numerator = p_known * p_slip
        denominator = numerator + (1.0 - p_known) * (1.0 - p_guess)

    if denominator == 0.0:
        return p_known

    return settle_probability(numerator / denominator)


def apply_learning_transition(p_given_obs: float, p_transit: float) -> float:
    """
    Apply the learning transition.

    Formula:
        P(L_next) = P(L | obs) + (1 - P(L | obs)) * P(T)
    """
    return settle_probability(p_given_obs + (1.0 - p_given_obs) * p_transit)


def _check_observation(is_correct: Any) -> bool:
    if not isinstance(is_correct, bool):
        raise InvalidObservationError(
            f"Observation must be a bool, got {type(is_correct).__name__}",
            details={"value": repr(is_correct)},
        )
    return is_correct


def update(state: BKTState, is_correct: bool) -> BKTState:
    """Return the belief after observing one graded answer."""
    _check_observation(is_correct)
    params = state.params
    p_given_obs = posterior_given_obs(state.p_known, is_correct, params.p_slip, params.p_guess)
    return replace(state, p_known=apply_learning_transition(p_given_obs, params.p_transit))


def batch_update(state: BKTState, observations: Iterable[bool]) -> BKTState:
    """Left fold of update over observations, in order."""
    return reduce(update, observations, state)


def update_mastery(state: BKTState, is_correct: bool) -> tuple[BKTState, dict]:
    """
    Complete BKT update plus the intermediate values for debugging/logging.

    Returns:
        Tuple of (new_state, metadata_dict)
    """
    _check_observation(is_correct)
    params = state.params
    p_correct_predicted = predict_correct(state.p_known, params.p_slip, params.p_guess)
    new_state = update(state, is_correct)

    metadata = {
        "p_known_prior": state.p_known,
        "p_correct_predicted": p_correct_predicted,
        "p_known_next": new_state.p_known,
        "observation": "correct" if is_correct else "wrong",
        "params_used": params.to_dict(),
    }
    return new_state, metadata


def predict_next_correct(state: BKTState) -> float:
    """Probability the learner answers the next question on this concept correctly."""
    return predict_correct(state.p_known, state.params.p_slip, state.params.p_guess)


def get_mastery_level(state: BKTState) -> int:
    """Mastery level 0-100 for dashboards."""
    return state.mastery_level
