"""Smoke tests for plotTimeSeries."""

import matplotlib
matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pytest

from ncsnet import plotTimeSeries as pts
from ncsnet.messages import makeMsg
from ncsnet.nodes import ControllerNode, ObserverNode, SensorNode


@pytest.fixture(autouse=True)
def closeFigures():
    yield
    plt.close("all")


def test_cm2inch():
    assert pts.cm2inch(2.54) == pytest.approx(1.0)


def test_plot_analog_outputs(kernel, sink):
    sensor = SensorNode(2, 9, 1, 0.01, sampleFcn=lambda t, k: [k, -k],
                        endTime=0.05).attach(kernel)
    sensor.init()
    kernel.run(1.0)
    fig = pts.plotAnalogOutputs(kernel, figNo=11)
    assert len(fig.axes) == 2


def test_plot_analog_outputs_empty(kernel):
    fig = pts.plotAnalogOutputs(kernel, figNo=12)
    assert len(fig.axes) == 0


def test_plot_control_history(kernel, sink, deliver):
    ctrl = ControllerNode(1, 9, 4, 'Ramp').attach(kernel)
    ctrl.init()
    for seq in range(1, 4):
        deliver(ctrl, 0.01 * seq, makeMsg(0.01 * seq, [0.0], seq, 1))
    kernel.run(1.0)
    fig = pts.plotControlHistory(ctrl, figNo=13)
    assert len(fig.axes) == 1


def test_plot_estimates(kernel, sink, deliver, doubleIntegrator):
    obs = ObserverNode(2, 9, 6, 'RampObserver',
                       plant=doubleIntegrator).attach(kernel)
    obs.init()
    for seq in range(1, 4):
        deliver(obs, 0.01 * seq, makeMsg(0.01 * seq, [0.0] * 3, seq, 1))
    kernel.run(1.0)
    states = np.column_stack((np.arange(3) * 0.01, np.ones(3), np.zeros(3)))
    fig = pts.plotEstimates(obs, figNo=14, states=states)
    assert len(fig.axes) == 2
