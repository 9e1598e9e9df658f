"""Unit tests for NcsStructure and generateDataLoss."""

import numpy as np
import pytest

from ncsnet.errors import ConfigurationError
from ncsnet.network import (NetworkDelayWithDropouts, NetworkOrderer,
                            NetworkPairer)
from ncsnet.nodes import ActuatorNode, ControllerNode, SensorNode
from ncsnet.structure import NcsStructure, generateDataLoss


def longestLossRun(mask):
    longest = run = 0
    for value in mask:
        run = run + 1 if (value == 0) else 0
        longest = max(longest, run)
    return longest


@pytest.fixture
def quiet():
    """Keyword arguments turning off console and file logging."""
    return {'logging': 'none', 'netLogging': 'none'}


class TestGenerateDataLoss:
    """Tests for generateDataLoss."""

    @pytest.mark.parametrize("maxLoss", [1, 2, 4])
    def test_consecutive_losses_bounded(self, rng, maxLoss):
        mask = generateDataLoss(maxLoss, 2000, rng=rng)
        assert mask.shape == (2000,)
        assert set(np.unique(mask)) <= {0.0, 1.0}
        assert longestLossRun(mask) <= maxLoss
        assert (mask == 0).any()

    def test_no_loss_allowed(self, rng):
        mask = generateDataLoss(0, 100, rng=rng)
        np.testing.assert_array_equal(mask, np.ones(100))

    def test_reproducible(self):
        a = generateDataLoss(2, 50, rng=np.random.default_rng(7))
        b = generateDataLoss(2, 50, rng=np.random.default_rng(7))
        np.testing.assert_array_equal(a, b)


class TestNcsStructure:
    """Tests for NcsStructure."""

    def test_requires_plant(self, quiet):
        with pytest.raises(ConfigurationError):
            NcsStructure("plant", **quiet)

    def test_default_sim_time(self, scalarPlant, quiet):
        ncs = NcsStructure(scalarPlant, **quiet)
        assert ncs.simTime == pytest.approx(50.0)

    def test_keyword_attributes(self, scalarPlant, quiet):
        ncs = NcsStructure(scalarPlant, seed=3, kernel='ignored', **quiet)
        assert ncs.seed == 3
        assert ncs.kernel != 'ignored'

    def test_default_loop(self, scalarPlant, quiet):
        ncs = NcsStructure(scalarPlant, simTime=0.045, **quiet)
        results = ncs.run()
        assert set(ncs.nodeMap) == {"SensorNode", "ControllerNode",
                                    "ActuatorNode"}
        np.testing.assert_array_equal(results["ControllerNode"]['uk'][:, 0],
                                      [1, 2, 3, 4, 5])
        np.testing.assert_allclose(results["ControllerNode"]['time'],
                                   np.arange(5) * 0.01)
        actuator = ncs.getNode("ActuatorNode")
        assert actuator.receivedSeqs == [1, 2, 3, 4, 5]

    def test_run_twice_same_results(self, scalarPlant, quiet):
        ncs = NcsStructure(scalarPlant, simTime=0.045, **quiet)
        first = ncs.run()
        second = ncs.run()
        np.testing.assert_array_equal(first["ControllerNode"]['uk'],
                                      second["ControllerNode"]['uk'])

    def test_add_node_duplicates(self, scalarPlant, quiet):
        ncs = NcsStructure(scalarPlant, **quiet)
        ncs.addNode("A", ActuatorNode(1, 1))
        with pytest.raises(ConfigurationError):
            ncs.addNode("A", ActuatorNode(1, 2))
        with pytest.raises(ConfigurationError):
            ncs.addNode("B", ActuatorNode(1, 1))
        assert ncs.getMaxNodeNr() == 1

    def test_get_node(self, scalarPlant, quiet):
        ncs = NcsStructure(scalarPlant, **quiet)
        node = ncs.addNode("A", ActuatorNode(1, 4))
        assert ncs.getNode("A") is node
        assert ncs.getNode(4) is node
        with pytest.raises(ConfigurationError):
            ncs.getNode("missing")

    def test_logging_settings(self, scalarPlant):
        ncs = NcsStructure(scalarPlant, logging='off', netLogging='off')
        assert ncs.logging == 'off'
        assert ncs.netLogging == 'off'
        assert ncs.log is not None


class DropoutLoop(NcsStructure):
    """Sensor -> bounded-loss delay -> controller -> actuator."""

    def createNodes(self):
        Ts = self.plant.sampleTime
        data = self.networkEffectsData
        endTime = (self.numSamples - 1) * Ts
        self.addNode("Sensor", SensorNode(1, 2, 1, Ts, endTime=endTime))
        self.addNode("Network", NetworkDelayWithDropouts(
            1, 3, 2, data['delays'], data['dataLoss'],
            data['maxConsecutiveLoss'], Ts))
        self.addNode("Controller", ControllerNode(1, 4, 3, 'Ramp'))
        self.addNode("Actuator", ActuatorNode(1, 4))


class PairedLoop(NcsStructure):
    """Sensor and controller streams joined by a pairer behind an orderer."""

    def createNodes(self):
        Ts = self.plant.sampleTime
        self.addNode("Sensor", SensorNode(1, [2, 3], 1, Ts,
                                          sampleFcn=lambda t, k: [k],
                                          endTime=self.simTime))
        self.addNode("Orderer", NetworkOrderer(1, 4, 2, Ts))
        self.addNode("Controller", ControllerNode(1, 4, 3, 'Ramp'))
        self.addNode("Pairer", NetworkPairer(2, 5, 4, 2, 3))
        self.addNode("Actuator", ActuatorNode(2, 5))


class TestCustomTopologies:
    """Subclassed structures wiring network effects into the loop."""

    def test_bounded_loss_loop_delivers_all(self, scalarPlant, rng, quiet):
        n = 20
        mask = generateDataLoss(2, n, rng=rng)
        ncs = DropoutLoop(scalarPlant, simTime=(n + 5) * 0.01, numSamples=n,
                          networkEffectsData={
                              'delays': np.full(n + 2, 2e-3),
                              'dataLoss': np.concatenate((mask, [1, 1])),
                              'maxConsecutiveLoss': 2,
                          }, **quiet)
        results = ncs.run()

        # Every window of three holds a delivered packet, so nothing is lost
        actuator = ncs.getNode("Actuator")
        assert sorted(actuator.receivedSeqs) == list(range(1, n + 1))
        assert len(results["Controller"]['uk']) == n
        assert ncs.getNode("Network").msgBuffer.elementCount == 0

    def test_paired_loop(self, scalarPlant, quiet):
        ncs = PairedLoop(scalarPlant, simTime=0.045, **quiet)
        ncs.run()
        actuator = ncs.getNode("Actuator")
        assert actuator.receivedSeqs == [1, 2, 3, 4, 5]
        np.testing.assert_array_equal(actuator.payloadHistory.data,
                                      [[k, k] for k in range(1, 6)])
