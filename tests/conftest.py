"""
Pytest configuration and shared fixtures.
"""

import pytest
import numpy as np


@pytest.fixture
def kernel():
    """Fresh event kernel at virtual time 0."""
    from ncsnet.kernel import SimKernel
    return SimKernel()


@pytest.fixture
def scalarPlant():
    """Scalar integrator x(k+1) = x(k) + u(k), y = x."""
    from ncsnet.plant import NcsPlant
    return NcsPlant(Ad=[[1.0]], Bd=[1.0], sampleTime=0.01)


@pytest.fixture
def doubleIntegrator():
    """Discrete double integrator with Ts = 0.01s and full state output."""
    from ncsnet.plant import NcsPlant
    Ts = 0.01
    return NcsPlant(Ad=[[1.0, Ts], [0.0, 1.0]],
                    Bd=[[0.5 * Ts**2], [Ts]],
                    sampleTime=Ts)


@pytest.fixture
def sink(kernel):
    """Actuator node 9 attached to the kernel, collecting delivered messages."""
    from ncsnet.nodes import ActuatorNode
    node = ActuatorNode(0, 9).attach(kernel)
    node.init()
    return node


@pytest.fixture
def rng():
    """Reproducible random number generator."""
    return np.random.default_rng(seed=42)


@pytest.fixture
def deliver(kernel):
    """Schedule a message to arrive at a node at a virtual time."""
    def _deliver(node, time, msg):
        return kernel.scheduleCallback(node.receive, time, msg)
    return _deliver
