"""Bayesian Knowledge Tracing (BKT) module.

This module implements the per-concept BKT mastery engine with:
- Standard 4-parameter model (P(L0), P(T), P(G), P(S))
- Online mastery updates per graded answer
- Order-preserving batch updates (a left fold of single updates)
- Strict parameter validation with float-drift guards
"""

from studygarden.learning_engine.bkt.core import (
    BKTParams,
    BKTState,
    apply_learning_transition,
    batch_update,
    get_mastery_level,
    initialize,
    posterior_given_obs,
    predict_correct,
    predict_next_correct,
    update,
)

__all__ = [
    "BKTParams",
    "BKTState",
    "initialize",
    "update",
    "batch_update",
    "predict_correct",
    "predict_next_correct",
    "posterior_given_obs",
    "apply_learning_transition",
    "get_mastery_level",
]
