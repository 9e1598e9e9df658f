"""Unit tests for NcsPlant and the control and observer strategies."""

import numpy as np
import pytest

from ncsnet import strategies as strat
from ncsnet.errors import (ConfigurationError, DimensionMismatchError,
                           UnknownStrategyError)
from ncsnet.messages import makeMsg
from ncsnet.plant import NcsPlant


def stateMsg(x, seq=1):
    return makeMsg(0.0, x, seq, 1)


class TestNcsPlant:
    """Tests for NcsPlant."""

    def test_sizes(self, doubleIntegrator):
        assert doubleIntegrator.stateSize == 2
        assert doubleIntegrator.inputSize == 1
        assert doubleIntegrator.outputSize == 2
        assert doubleIntegrator.liftedStateSize == 3

    def test_lifted_size(self):
        plant = NcsPlant(np.eye(2), np.ones((2, 2)), delaySteps=3)
        assert plant.liftedStateSize == 2 + 3 * 2

    def test_shape_checks(self):
        with pytest.raises(DimensionMismatchError):
            NcsPlant(np.ones((2, 3)), np.ones(2))
        with pytest.raises(DimensionMismatchError):
            NcsPlant(np.eye(2), np.ones(3))
        with pytest.raises(DimensionMismatchError):
            NcsPlant(np.eye(2), np.ones(2), Cd=np.ones((1, 3)))

    def test_saturation(self):
        plant = NcsPlant(np.eye(2), np.ones((2, 2)),
                         controlSaturationLimits=[1.0, 2.0])
        np.testing.assert_array_equal(plant.saturate([5.0, -5.0]),
                                      [1.0, -2.0])
        plant = NcsPlant(np.eye(2), np.ones((2, 2)),
                         controlSaturationLimits=[[0.0, 1.0], [-1.0, 0.5]])
        np.testing.assert_array_equal(plant.saturate([-3.0, 3.0]),
                                      [0.0, 0.5])

    def test_invalid_saturation(self):
        with pytest.raises(DimensionMismatchError):
            NcsPlant(np.eye(2), np.ones((2, 2)),
                     controlSaturationLimits=np.ones((3, 2)))

    def test_step_and_output(self, scalarPlant):
        assert scalarPlant.step([1.0], [2.0])[0] == 3.0
        assert scalarPlant.output([4.0])[0] == 4.0


class TestControlStrategies:
    """Tests for control strategies."""

    def test_ramp(self, scalarPlant):
        ramp = strat.Ramp(scalarPlant)
        u, state = ramp.execute(stateMsg([0.0], seq=7), {}, scalarPlant)
        np.testing.assert_array_equal(u, [7.0])
        assert state == {}

    def test_ramp_without_plant(self):
        u, _ = strat.Ramp(None).execute(stateMsg([0.0], seq=3), {}, None)
        np.testing.assert_array_equal(u, [3.0])

    def test_state_feedback(self, doubleIntegrator):
        params = {'k': [[-1.0, -2.0]]}
        ctrl = strat.StateFeedback(doubleIntegrator, params)
        u, _ = ctrl.execute(stateMsg([1.0, 1.0]), params, doubleIntegrator)
        np.testing.assert_allclose(u, [-3.0])

    def test_state_feedback_flat_gain(self, doubleIntegrator):
        params = {'k': [-1.0, -2.0]}
        ctrl = strat.StateFeedback(doubleIntegrator, params)
        assert ctrl.K.shape == (1, 2)

    def test_state_feedback_saturates(self):
        plant = NcsPlant([[1.0]], [1.0], controlSaturationLimits=[2.0])
        params = {'k': [[-10.0]]}
        ctrl = strat.StateFeedback(plant, params)
        u, _ = ctrl.execute(stateMsg([1.0]), params, plant)
        np.testing.assert_array_equal(u, [-2.0])

    def test_gain_dimension_mismatch(self, doubleIntegrator):
        with pytest.raises(DimensionMismatchError):
            strat.StateFeedback(doubleIntegrator, {'k': [[1.0, 2.0, 3.0]]})
        with pytest.raises(DimensionMismatchError):
            strat.StateFeedback(doubleIntegrator, {})

    def test_gain_checked_on_execute(self, doubleIntegrator):
        ctrl = strat.StateFeedback(doubleIntegrator, {'k': [[1.0, 1.0]]})
        with pytest.raises(DimensionMismatchError):
            ctrl.execute(stateMsg([1.0, 1.0]), {'k': np.ones((2, 2))},
                         doubleIntegrator)

    def test_short_payload(self, doubleIntegrator):
        params = {'k': [[1.0, 1.0]]}
        ctrl = strat.StateFeedback(doubleIntegrator, params)
        with pytest.raises(DimensionMismatchError):
            ctrl.execute(stateMsg([1.0]), params, doubleIntegrator)

    def test_lifted_state_feedback_shifts_history(self):
        plant = NcsPlant(np.eye(2), [[0.0], [1.0]], delaySteps=2)
        params = {'k': [[1.0, 0.0, 0.0, 0.0]]}
        ctrl = strat.LiftedStateFeedback(plant, params)
        np.testing.assert_array_equal(ctrl.state['delayedControlSignals'],
                                      [0.0, 0.0])

        for x1 in (1.0, 2.0, 3.0):
            u, state = ctrl.execute(stateMsg([x1, 5.0]), params, plant)
            assert u[0] == x1

        np.testing.assert_array_equal(state['delayedControlSignals'],
                                      [3.0, 2.0])
        np.testing.assert_array_equal(state['liftedState'],
                                      [3.0, 5.0, 2.0, 1.0])

    def test_lifted_uses_past_inputs(self):
        plant = NcsPlant([[1.0]], [1.0], delaySteps=1)
        params = {'k': [[-1.0, -0.5]]}
        ctrl = strat.LiftedStateFeedback(plant, params)
        u1, _ = ctrl.execute(stateMsg([2.0]), params, plant)
        u2, _ = ctrl.execute(stateMsg([2.0]), params, plant)
        assert u1[0] == pytest.approx(-2.0)
        assert u2[0] == pytest.approx(-2.0 + 1.0)

    def test_lifted_gain_mismatch(self, doubleIntegrator):
        with pytest.raises(DimensionMismatchError):
            strat.LiftedStateFeedback(doubleIntegrator, {'k': [[1.0, 1.0]]})

    def test_state_is_a_copy(self):
        plant = NcsPlant([[1.0]], [1.0], delaySteps=1)
        ctrl = strat.LiftedStateFeedback(plant, {'k': [[1.0, 0.0]]})
        state = ctrl.state
        state['delayedControlSignals'][0] = 99.0
        assert ctrl.delayedControlSignals[0] == 0.0


class TestObserverStrategies:
    """Tests for observer strategies."""

    def test_ramp_observer(self, doubleIntegrator):
        obs = strat.RampObserver(doubleIntegrator)
        xhat, _ = obs.execute(stateMsg([0.0, 0.0, 0.0], seq=4), {},
                              doubleIntegrator)
        np.testing.assert_array_equal(xhat, [4.0, 4.0])

    def test_luenberger(self, scalarPlant):
        params = {'l': [[0.5]]}
        obs = strat.LuenbergerObserver(scalarPlant, params)
        xhat, _ = obs.execute(stateMsg([2.0, 1.0]), params, scalarPlant)
        assert xhat[0] == pytest.approx(0.0 + 1.0 + 0.5 * 2.0)

    def test_luenberger_lost_output_predicts(self, scalarPlant):
        params = {'l': [[0.5]], 'x0': [2.0]}
        obs = strat.LuenbergerObserver(scalarPlant, params)
        xhat, state = obs.execute(stateMsg([np.nan, 1.0]), params,
                                  scalarPlant)
        assert xhat[0] == pytest.approx(3.0)
        assert state['estimate'][0] == pytest.approx(3.0)

    def test_lost_input_read_as_zero(self, scalarPlant):
        params = {'l': [[0.0]], 'x0': [2.0]}
        obs = strat.LuenbergerObserver(scalarPlant, params)
        xhat, _ = obs.execute(stateMsg([2.0, np.nan]), params, scalarPlant)
        assert xhat[0] == pytest.approx(2.0)

    def test_luenberger_gain_mismatch(self, doubleIntegrator):
        with pytest.raises(DimensionMismatchError):
            strat.LuenbergerObserver(doubleIntegrator, {'l': [[1.0, 1.0]]})

    def test_initial_estimate_size(self, scalarPlant):
        with pytest.raises(DimensionMismatchError):
            strat.LuenbergerObserver(scalarPlant,
                                     {'l': [[0.5]], 'x0': [1.0, 2.0]})

    def test_switched_gain(self):
        plant = NcsPlant([[1.0]], [0.0])
        params = {'l': [[[0.5]], [[0.25]]]}
        obs = strat.SwitchedGainObserver(plant, params)

        steps = [
            ([2.0, 0.0], 1.0, 0),           # valid, L0 on error 2
            ([np.nan, 0.0], 1.5, 1),        # lost, L1 on last error
            ([np.nan, 0.0], 2.0, 2),        # lost, clamped to last gain
            ([3.0, 0.0], 2.5, 0),           # valid, error 1
        ]
        for payload, expected, flag in steps:
            xhat, state = obs.execute(stateMsg(payload), params, plant)
            assert xhat[0] == pytest.approx(expected)
            assert state['flagLost'] == flag
        np.testing.assert_allclose(state['lastError'], [1.0])

    def test_switched_gain_single_matrix(self, scalarPlant):
        obs = strat.SwitchedGainObserver(scalarPlant, {'l': np.array([[0.5]])})
        assert len(obs.gains) == 1

    def test_switched_gain_empty_table(self, scalarPlant):
        with pytest.raises(DimensionMismatchError):
            strat.SwitchedGainObserver(scalarPlant, {'l': []})


class TestRegistry:
    """Tests for the strategy registries."""

    @pytest.mark.parametrize("name,cls", [
        ("Ramp", strat.Ramp),
        ("StateFeedbackStrategy", strat.StateFeedback),
        ("ExtendedStateFeedback", strat.LiftedStateFeedback),
    ])
    def test_control_lookup(self, name, cls):
        assert strat.getControlStrategy(name) is cls

    @pytest.mark.parametrize("name,cls", [
        ("RampO", strat.RampObserver),
        ("LuenbergerObserverStrategy", strat.LuenbergerObserver),
        ("SwitchedLyapStrategy", strat.SwitchedGainObserver),
    ])
    def test_observer_lookup(self, name, cls):
        assert strat.getObserverStrategy(name) is cls

    @pytest.mark.parametrize("cls, params", [
        (strat.StateFeedback, {'k': [[1.0]]}),
        (strat.LiftedStateFeedback, {'k': [[1.0, 0.0]]}),
        (strat.LuenbergerObserver, {'l': [[0.5]]}),
        (strat.SwitchedGainObserver, {'l': [[[0.5]]]}),
    ])
    def test_model_based_strategy_needs_plant(self, cls, params):
        with pytest.raises(ConfigurationError, match="requires an NcsPlant"):
            cls(None, params)

    def test_unknown(self):
        with pytest.raises(UnknownStrategyError) as excinfo:
            strat.getControlStrategy('pid')
        assert 'pid' in str(excinfo.value)
        with pytest.raises(KeyError):
            strat.getObserverStrategy('kalman')

    def test_register(self, monkeypatch):
        monkeypatch.setitem(strat.CONTROL_STRATEGIES, 'zero', None)

        class Zero(strat.ControlStrategy):
            def execute(self, message, params, plant):
                return np.zeros(1), self.state

        strat.registerControlStrategy('Zero', Zero)
        assert strat.getControlStrategy('zero') is Zero
