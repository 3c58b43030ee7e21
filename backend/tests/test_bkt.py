"""Tests for BKT (Bayesian Knowledge Tracing) implementation."""

import math

import pytest

from studygarden.core.app_exceptions import (
    InvalidObservationError,
    InvalidParameterError,
    ProbabilityDriftError,
)
from studygarden.learning_engine.bkt import (
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
from studygarden.learning_engine.bkt.core import settle_probability, to_percent, update_mastery


class TestBKTCore:
    """Test core BKT math functions."""

    def test_predict_correct(self):
        """Test prediction of correct answer probability."""
        # P(Correct) = 0.8 * (1 - 0.1) + (1 - 0.8) * 0.2 = 0.72 + 0.04 = 0.76
        assert predict_correct(p_known=0.8, p_slip=0.1, p_guess=0.2) == pytest.approx(0.76)
        assert predict_correct(p_known=0.0, p_slip=0.1, p_guess=0.2) == pytest.approx(0.2)
        assert predict_correct(p_known=1.0, p_slip=0.1, p_guess=0.2) == pytest.approx(0.9)

    def test_posterior_given_correct(self):
        # P(L|Correct) = (0.5 * 0.9) / 0.55 ≈ 0.818
        posterior = posterior_given_obs(p_known=0.5, is_correct=True, p_slip=0.1, p_guess=0.2)
        assert posterior == pytest.approx(0.45 / 0.55)
        assert posterior > 0.5

    def test_posterior_given_wrong(self):
        # P(L|Wrong) = (0.5 * 0.1) / 0.45 ≈ 0.111
        posterior = posterior_given_obs(p_known=0.5, is_correct=False, p_slip=0.1, p_guess=0.2)
        assert posterior == pytest.approx(0.05 / 0.45)
        assert posterior < 0.5

    def test_posterior_zero_evidence_keeps_prior(self):
        """A correct answer the model says is impossible leaves the belief alone."""
        # p_known=0 and p_guess=0: P(Correct) == 0
        assert posterior_given_obs(p_known=0.0, is_correct=True, p_slip=0.1, p_guess=0.0) == 0.0
        # p_known=1 and p_slip=0: P(Wrong) == 0
        assert posterior_given_obs(p_known=1.0, is_correct=False, p_slip=0.0, p_guess=0.2) == 1.0

    def test_apply_learning_transition(self):
        # P(L_next) = 0.8 + (1 - 0.8) * 0.2 = 0.84
        p_next = apply_learning_transition(p_given_obs=0.8, p_transit=0.2)
        assert p_next == pytest.approx(0.84)
        assert p_next >= 0.8

    def test_settle_probability(self):
        assert settle_probability(0.5) == 0.5
        assert settle_probability(1.0 + 1e-12) == 1.0
        assert settle_probability(-1e-12) == 0.0
        with pytest.raises(ProbabilityDriftError):
            settle_probability(1.01)
        with pytest.raises(ProbabilityDriftError):
            settle_probability(math.nan)

    def test_to_percent_rounds_half_up(self):
        assert to_percent(0.3) == 30
        assert to_percent(0.375) == 38
        assert to_percent(0.625) == 63
        assert to_percent(0.004) == 0
        assert to_percent(0.125) == 13
        assert to_percent(0.285) == 29
        assert to_percent(0.005) == 1
        assert to_percent(0.145) == 15
        assert to_percent(0.0) == 0
        assert to_percent(1.0) == 100


class TestBKTParams:
    """Test parameter validation."""

    def test_defaults(self):
        params = BKTParams()
        assert params.p_init == 0.3
        assert params.p_transit == 0.01
        assert params.p_guess == 0.4
        assert params.p_slip == 0.1

    @pytest.mark.parametrize("name", ["p_init", "p_transit", "p_guess", "p_slip"])
    @pytest.mark.parametrize("value", [-0.01, 1.01, math.nan, math.inf, "0.5", None, True])
    def test_rejects_invalid(self, name, value):
        with pytest.raises(InvalidParameterError) as exc_info:
            BKTParams(**{name: value})
        assert exc_info.value.code == "INVALID_PARAMETER"
        assert exc_info.value.details["parameter"] == name

    def test_accepts_bounds(self):
        params = BKTParams(p_init=0, p_transit=1, p_guess=0.0, p_slip=1.0)
        assert params.p_init == 0.0
        assert isinstance(params.p_init, float)

    def test_invalid_parameter_error_is_value_error(self):
        with pytest.raises(ValueError):
            BKTParams(p_slip=2.0)

    def test_state_rejects_invalid_p_known(self):
        with pytest.raises(InvalidParameterError):
            BKTState(params=BKTParams(), p_known=1.5)


class TestBKTUpdates:
    """Test state updates from default priors."""

    def test_initialize_default_level(self):
        state = initialize()
        assert state.p_known == 0.3
        assert get_mastery_level(state) == 30

    def test_initialize_custom_level(self):
        state = initialize(BKTParams(p_init=0.125))
        assert get_mastery_level(state) == 13

    def test_p_learned_mirrors_p_known(self):
        state = update(initialize(), True)
        assert state.p_learned == state.p_known

    def test_update_returns_new_state(self):
        state = initialize()
        new_state = update(state, True)
        assert new_state is not state
        assert state.p_known == 0.3
        assert new_state.params == state.params

    def test_single_correct(self):
        # posterior 0.27 / 0.55, then transition with p_transit 0.01
        state = update(initialize(), True)
        assert state.p_known == pytest.approx(0.496)

    def test_single_incorrect(self):
        # posterior 0.03 / 0.45, then transition with p_transit 0.01
        state = update(initialize(), False)
        assert state.p_known == pytest.approx(0.076)

    def test_five_correct_exceeds_70(self):
        state = batch_update(initialize(), [True] * 5)
        assert get_mastery_level(state) > 70
        assert get_mastery_level(state) == 96

    def test_five_incorrect_below_20(self):
        state = batch_update(initialize(), [False] * 5)
        assert get_mastery_level(state) < 20
        assert get_mastery_level(state) == 1

    def test_correct_run_never_decreases(self):
        state = initialize()
        for _ in range(20):
            next_state = update(state, True)
            assert next_state.p_known >= state.p_known
            state = next_state

    def test_incorrect_run_never_increases_from_defaults(self):
        state = initialize()
        for _ in range(5):
            next_state = update(state, False)
            assert next_state.p_known <= state.p_known
            state = next_state

    def test_learning_curve_recovery(self):
        """Two misses then five hits lands in the 50-80 band."""
        state = batch_update(initialize(), [False, False, True, True, True, True, True])
        assert 50 <= get_mastery_level(state) <= 80

    def test_batch_matches_sequential(self):
        observations = [True, False, False, True, True, False, True]
        state = initialize()
        for obs in observations:
            state = update(state, obs)
        assert batch_update(initialize(), observations) == state

    def test_batch_empty_is_identity(self):
        state = initialize()
        assert batch_update(state, []) == state

    def test_order_matters(self):
        a = batch_update(initialize(), [True, False, True])
        b = batch_update(initialize(), [True, True, False])
        assert a.p_known != b.p_known

    @pytest.mark.parametrize("obs", [1, 0, "true", None])
    def test_rejects_non_bool_observation(self, obs):
        with pytest.raises(InvalidObservationError):
            update(initialize(), obs)

    def test_update_mastery_metadata(self):
        new_state, metadata = update_mastery(initialize(), True)
        assert metadata["p_known_prior"] == 0.3
        assert metadata["p_correct_predicted"] == pytest.approx(0.55)
        assert metadata["p_known_next"] == new_state.p_known
        assert metadata["observation"] == "correct"
        assert metadata["params_used"] == BKTParams().to_dict()


class TestPredictNextCorrect:
    def test_from_defaults(self):
        assert predict_next_correct(initialize()) == pytest.approx(0.55)

    def test_increases_after_correct(self):
        state = initialize()
        assert predict_next_correct(update(state, True)) > predict_next_correct(state)

    def test_decreases_after_incorrect(self):
        state = initialize()
        assert predict_next_correct(update(state, False)) < predict_next_correct(state)

    def test_stays_in_unit_interval(self):
        for params in (BKTParams(p_guess=1.0, p_slip=0.0), BKTParams(p_guess=0.0, p_slip=1.0)):
            state = initialize(params)
            for obs in (True, False, True, True):
                state = update(state, obs)
                assert 0.0 <= predict_next_correct(state) <= 1.0
