"""
NCSnet: Networked Control System Network Simulator

Deterministic discrete-event simulation of network effects (variable delay,
packet loss, reordering, buffering) on control loops split across nodes, with
pluggable control and estimation strategies.

Modules
-------
messages : Network messages and message buffers
kernel : Virtual clock and event dispatcher
network : Delay, dropout, orderer and pairer nodes
nodes : Sensor, actuator, controller and observer nodes
strategies : Control and observer strategies and their registries
plant : Discrete plant description
structure : Topology wiring and run control
history : Append-only history logs
plotTimeSeries : Plotting utilities
logger : Logging configuration and utilities
errors : Exception types

Examples
--------
### Sensor -> delay -> orderer -> controller -> actuator:

>>> import numpy as np
>>> import ncsnet as ncs
>>>
>>> plant = ncs.NcsPlant(Ad=[[1.0]], Bd=[1.0], sampleTime=0.01)
>>>
>>> class DelayLoop(ncs.NcsStructure):
...     def createNodes(self):
...         Ts = self.plant.sampleTime
...         self.addNode("Sensor", ncs.SensorNode(1, 2, 1, Ts))
...         self.addNode("Delay", ncs.NetworkDelay(
...             1, 3, 2, self.networkEffectsData['delays']))
...         self.addNode("Orderer", ncs.NetworkOrderer(1, 4, 3, Ts))
...         self.addNode("Controller", ncs.ControllerNode(1, 5, 4, 'Ramp'))
...         self.addNode("Actuator", ncs.ActuatorNode(1, 5))
>>>
>>> loop = DelayLoop(plant, simTime=0.05, logging='none', netLogging='none',
...                  networkEffectsData={'delays': np.full(10, 1e-3)})
>>> results = loop.run()
"""

# Core modules - import for direct access
from . import errors
from . import history
from . import kernel
from . import logger
from . import messages
from . import network
from . import nodes
from . import plant
from . import plotTimeSeries
from . import strategies
from . import structure

# Classes and functions for convenience
from .errors import (NcsError, InvalidTypeError, EmptyBufferError,
                     DimensionMismatchError, CausalityViolationError,
                     UnknownStrategyError, ConfigurationError)
from .kernel import SimKernel
from .messages import NetworkMsg, BufferElement, MsgBuffer, makeMsg
from .network import (VariableDelay, NetworkDelay, NetworkDropoutSimple,
                      NetworkDropoutDetection, NetworkDelayWithDropouts,
                      NetworkBuffer, NetworkOrderer, NetworkPairer)
from .nodes import (NetworkNode, SensorNode, ActuatorNode, MsgRejection,
                    ControllerNode, ObserverNode)
from .plant import NcsPlant
from .structure import NcsStructure, generateDataLoss

# Version info
__version__ = "0.1.0"

# Define what gets imported with "from ncsnet import *"
__all__ = [
    # Modules
    'errors',
    'history',
    'kernel',
    'logger',
    'messages',
    'network',
    'nodes',
    'plant',
    'plotTimeSeries',
    'strategies',
    'structure',

    # Core
    'SimKernel',
    'NcsStructure',
    'NcsPlant',
    'generateDataLoss',

    # Messages
    'NetworkMsg',
    'BufferElement',
    'MsgBuffer',
    'makeMsg',

    # Nodes
    'NetworkNode',
    'SensorNode',
    'ActuatorNode',
    'MsgRejection',
    'ControllerNode',
    'ObserverNode',
    'VariableDelay',
    'NetworkDelay',
    'NetworkDropoutSimple',
    'NetworkDropoutDetection',
    'NetworkDelayWithDropouts',
    'NetworkBuffer',
    'NetworkOrderer',
    'NetworkPairer',

    # Errors
    'NcsError',
    'InvalidTypeError',
    'EmptyBufferError',
    'DimensionMismatchError',
    'CausalityViolationError',
    'UnknownStrategyError',
    'ConfigurationError',
]
