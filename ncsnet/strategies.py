"""
Pluggable control and estimation strategies.

A strategy is owned by exactly one ControllerNode or ObserverNode. On every
received message the node calls strategy.execute(message, params, plant), which
returns the new signal together with a snapshot of the strategy's internal
state. Strategies keep their own history (past control signals, last estimate,
loss counter) and read nothing global.


Classes
-------
**Interfaces**
    ControlStrategy
        Abstract control law: message -> control signal.
    ObserverStrategy
        Abstract estimator: message -> state estimate.

**Control Strategies**
    Ramp
        Control signal equals the message sequence number (debugging).
    StateFeedback
        u = K x.
    LiftedStateFeedback
        u = K [x; u(k-1); ...; u(k-d)] for known transport delay of d steps.

**Observer Strategies**
    RampObserver
        Estimate filled with the message sequence number (debugging).
    LuenbergerObserver
        Luenberger observer with prediction-only update on lost output.
    SwitchedGainObserver
        Observer switching its gain with the count of consecutive losses.


Functions
---------
getControlStrategy(name)
    Return control strategy factory registered under name.
getObserverStrategy(name)
    Return observer strategy factory registered under name.
registerControlStrategy(name, factory)
    Add a control strategy factory to the registry.
registerObserverStrategy(name, factory)
    Add an observer strategy factory to the registry.


Notes
-----
**Message Layouts:**

- Control strategies read the state vector x from the payload (first
  stateSize entries).
- Observer strategies read [y, u] from the payload: the first outputSize
  entries are the measured output, the next inputSize entries the applied
  input. A NaN in y marks a measurement flagged as lost by the network.

**Parameters:**

Gains are passed in a plain dict: 'k' holds the feedback gain of control
strategies, 'l' holds the observer gain (LuenbergerObserver) or a sequence of
gains indexed by consecutive-loss count (SwitchedGainObserver). Gains are shape
checked when the strategy is constructed and again on every execute(), because
params may be swapped between calls.

**Sign Convention:**

u = K x. A stabilizing gain designed for u = -K x must be passed negated.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple
from numpy.typing import NDArray
import numpy as np
from ncsnet import logger
from ncsnet.errors import (ConfigurationError, DimensionMismatchError,
                           UnknownStrategyError)
from ncsnet.messages import NetworkMsg
from ncsnet.plant import NcsPlant

#-----------------------------------------------------------------------------#

# Type Aliases
NPFltArr = NDArray[np.float64]
Params = Dict[str, Any]
StrategyResult = Tuple[NPFltArr, Dict[str, Any]]

# Global Variables
log = logger.addLog('strat')

###############################################################################

def _checkGain(gain:Any, shape:Tuple[int, int], label:str)->NPFltArr:
    """Return gain as 2-D float array, raising if its shape is not shape."""

    if (gain is None):
        raise DimensionMismatchError(f'{label} is missing, expected '
                                     f'{shape[0]}x{shape[1]}')
    gain = np.asarray(gain, dtype=np.float64)
    if (gain.ndim < 2) and (1 in shape):
        gain = gain.reshape(shape) if (gain.size == shape[0]*shape[1]) else gain
    if (gain.shape != shape):
        raise DimensionMismatchError(
            f'Size of {label} must be {shape[0]}x{shape[1]}, got '
            f'{"x".join(str(s) for s in gain.shape)}')
    return gain

###############################################################################

def _requirePlant(plant:Optional[NcsPlant], label:str)->NcsPlant:
    """Return plant, raising if a model-based strategy got none."""

    if not isinstance(plant, NcsPlant):
        raise ConfigurationError(f'{label} requires an NcsPlant')
    return plant

###############################################################################

def _payloadSlice(message:NetworkMsg, start:int, size:int,
                  label:str)->NPFltArr:
    """Return payload[start:start+size], raising if payload is too short."""

    if (message.payload.size < start + size):
        raise DimensionMismatchError(
            f'payload of seq {message.sequenceNumber} has '
            f'{message.payload.size} values, {label} needs '
            f'{start + size}')
    return message.payload[start:start+size]

###############################################################################

class ControlStrategy(ABC):
    """
    Base class of control laws run by a ControllerNode.

    Parameters
    ----------
    plant : NcsPlant
        Discrete plant model.
    params : dict, optional
        Strategy parameters (gains).
    """

    name = 'control'

    ## Constructor ===========================================================#
    def __init__(self, plant:Optional[NcsPlant], params:Optional[Params]=None,
                 )->None:
        self.plant = plant
        self.params = {} if (params is None) else params

    ## Special Methods =======================================================#
    def __repr__(self)->str:
        return f"{self.__class__.__name__}()"

    ## Properties ============================================================#
    @property
    def state(self)->Dict[str, Any]:
        """Snapshot of internal state (copies)."""
        return {}

    ## Methods ===============================================================#
    @abstractmethod
    def execute(self,
                message:NetworkMsg,
                params:Params,
                plant:Optional[NcsPlant],
                )->StrategyResult:
        """
        Compute control signal from received message.

        Parameters
        ----------
        message : NetworkMsg
            Received message, payload holds the state vector.
        params : dict
            Strategy parameters.
        plant : NcsPlant
            Discrete plant model.

        Returns
        -------
        controlSignal : ndarray
            Control vector.
        state : dict
            Snapshot of the strategy state after the update.
        """
        raise NotImplementedError

###############################################################################

class ObserverStrategy(ABC):
    """
    Base class of state estimators run by an ObserverNode.

    Parameters
    ----------
    plant : NcsPlant
        Discrete plant model.
    params : dict, optional
        Strategy parameters (gains).
    """

    name = 'observer'

    ## Constructor ===========================================================#
    def __init__(self, plant:Optional[NcsPlant], params:Optional[Params]=None,
                 )->None:
        self.plant = plant
        self.params = {} if (params is None) else params

    ## Special Methods =======================================================#
    def __repr__(self)->str:
        return f"{self.__class__.__name__}()"

    ## Properties ============================================================#
    @property
    def state(self)->Dict[str, Any]:
        """Snapshot of internal state (copies)."""
        return {}

    ## Methods ===============================================================#
    @abstractmethod
    def execute(self,
                message:NetworkMsg,
                params:Params,
                plant:Optional[NcsPlant],
                )->StrategyResult:
        """
        Compute state estimate from received message.

        Returns
        -------
        estimate : ndarray
            State estimate.
        state : dict
            Snapshot of the strategy state after the update.
        """
        raise NotImplementedError

###############################################################################

class Ramp(ControlStrategy):
    """Control signal equals the received sequence number."""

    name = 'ramp'

    def execute(self, message:NetworkMsg, params:Params,
                plant:Optional[NcsPlant])->StrategyResult:
        size = 1 if (plant is None) else plant.inputSize
        signal = np.full(size, float(message.sequenceNumber))
        return signal, self.state

###############################################################################

class StateFeedback(ControlStrategy):
    """
    Static state feedback u = K x.

    Parameters
    ----------
    plant : NcsPlant
        Discrete plant model.
    params : dict
        'k' : array_like, shape (inputSize, stateSize)
            Feedback gain.

    Raises
    ------
    DimensionMismatchError
        If the gain has the wrong shape.
    """

    name = 'statefeedback'

    def __init__(self, plant:NcsPlant, params:Optional[Params]=None)->None:
        super().__init__(_requirePlant(plant, 'StateFeedback'), params)
        self.K = _checkGain(self.params.get('k'),
                            (plant.inputSize, plant.stateSize), 'k')

    def execute(self, message:NetworkMsg, params:Params,
                plant:NcsPlant)->StrategyResult:
        K = _checkGain(params.get('k', self.K),
                       (plant.inputSize, plant.stateSize), 'k')
        x = _payloadSlice(message, 0, plant.stateSize, 'state')
        u = plant.saturate(K @ x)
        return u, self.state

###############################################################################

class LiftedStateFeedback(ControlStrategy):
    """
    State feedback on the state lifted with past control signals.

    The lifted state is [x; u(k-1); ...; u(k-d)] with d = plant.delaySteps,
    so the gain compensates a known transport delay of d sampling periods.
    After each call the new control signal is pushed into the history and the
    oldest one dropped.

    Parameters
    ----------
    plant : NcsPlant
        Discrete plant model.
    params : dict
        'k' : array_like, shape (inputSize, stateSize + delaySteps*inputSize)
            Feedback gain on the lifted state.

    Raises
    ------
    DimensionMismatchError
        If the gain has the wrong shape.
    """

    name = 'liftedstatefeedback'

    def __init__(self, plant:NcsPlant, params:Optional[Params]=None)->None:
        super().__init__(_requirePlant(plant, 'LiftedStateFeedback'), params)
        self.K = _checkGain(self.params.get('k'),
                            (plant.inputSize, plant.liftedStateSize), 'k')
        self.delayedControlSignals = np.zeros(plant.delaySteps *
                                              plant.inputSize)
        self.liftedState = np.zeros(plant.liftedStateSize)

    @property
    def state(self)->Dict[str, Any]:
        return {'delayedControlSignals': self.delayedControlSignals.copy(),
                'liftedState': self.liftedState.copy()}

    def execute(self, message:NetworkMsg, params:Params,
                plant:NcsPlant)->StrategyResult:
        K = _checkGain(params.get('k', self.K),
                       (plant.inputSize, plant.liftedStateSize), 'k')
        x = _payloadSlice(message, 0, plant.stateSize, 'state')
        self.liftedState = np.concatenate((x, self.delayedControlSignals))
        u = plant.saturate(K @ self.liftedState)
        # Newest first, oldest dropped
        nHist = self.delayedControlSignals.size
        self.delayedControlSignals = np.concatenate(
            (u, self.delayedControlSignals))[:nHist]
        return u, self.state

###############################################################################

class RampObserver(ObserverStrategy):
    """Estimate of every state equals the received sequence number."""

    name = 'rampobserver'

    def execute(self, message:NetworkMsg, params:Params,
                plant:Optional[NcsPlant])->StrategyResult:
        size = 1 if (plant is None) else plant.stateSize
        return np.full(size, float(message.sequenceNumber)), self.state

###############################################################################

class LuenbergerObserver(ObserverStrategy):
    """
    Luenberger observer driven by networked [y, u] messages.

    x(k+1) = A x(k) + B u(k) + L (y(k) - C x(k)). When y is flagged as lost
    (NaN) only the prediction A x(k) + B u(k) is applied.

    Parameters
    ----------
    plant : NcsPlant
        Discrete plant model.
    params : dict
        'l' : array_like, shape (stateSize, outputSize)
            Observer gain.
        'x0' : array_like, shape (stateSize,), optional
            Initial estimate, zeros by default.

    Raises
    ------
    DimensionMismatchError
        If the gain has the wrong shape.
    """

    name = 'luenberger'

    def __init__(self, plant:NcsPlant, params:Optional[Params]=None)->None:
        super().__init__(_requirePlant(plant, 'LuenbergerObserver'), params)
        self.L = _checkGain(self.params.get('l'),
                            (plant.stateSize, plant.outputSize), 'l')
        self.estimate = _initialEstimate(self.params, plant)

    @property
    def state(self)->Dict[str, Any]:
        return {'estimate': self.estimate.copy()}

    def execute(self, message:NetworkMsg, params:Params,
                plant:NcsPlant)->StrategyResult:
        L = _checkGain(params.get('l', self.L),
                       (plant.stateSize, plant.outputSize), 'l')
        y, u = _splitOutputInput(message, plant)
        x = self.estimate
        xNext = plant.Ad @ x + plant.Bd @ u
        if not (np.isnan(y).any()):
            xNext = xNext + L @ (y - plant.Cd @ x)
        else:
            log.debug('seq %d: output lost, prediction only',
                      message.sequenceNumber)
        self.estimate = xNext
        return xNext.copy(), self.state

###############################################################################

class SwitchedGainObserver(ObserverStrategy):
    """
    Observer switching its gain with the number of consecutive lost outputs.

    On a valid output the loss counter is reset, gain L[0] corrects the
    prediction and the output error is stored. On a lost output the counter is
    incremented and the prediction is corrected with L[counter] applied to the
    last known output error. Once the counter exceeds the table, the last gain
    is reused.

    Parameters
    ----------
    plant : NcsPlant
        Discrete plant model.
    params : dict
        'l' : sequence of array_like, each shape (stateSize, outputSize)
            Gain table indexed by consecutive-loss count.
        'x0' : array_like, shape (stateSize,), optional
            Initial estimate, zeros by default.

    Raises
    ------
    DimensionMismatchError
        If the table is empty or any gain has the wrong shape.
    """

    name = 'switchedgain'

    def __init__(self, plant:NcsPlant, params:Optional[Params]=None)->None:
        super().__init__(_requirePlant(plant, 'SwitchedGainObserver'), params)
        self.gains = self._checkGains(self.params.get('l'), plant)
        self.flagLost = 0
        self.lastError = np.zeros(plant.outputSize)
        self.estimate = _initialEstimate(self.params, plant)

    @property
    def state(self)->Dict[str, Any]:
        return {'estimate': self.estimate.copy(),
                'flagLost': self.flagLost,
                'lastError': self.lastError.copy()}

    def execute(self, message:NetworkMsg, params:Params,
                plant:NcsPlant)->StrategyResult:
        gains = self.gains
        if (('l' in params) and (params['l'] is not self.params.get('l'))):
            gains = self._checkGains(params['l'], plant)
        y, u = _splitOutputInput(message, plant)
        x = self.estimate
        xNext = plant.Ad @ x + plant.Bd @ u

        if not (np.isnan(y).any()):
            self.flagLost = 0
            self.lastError = y - plant.Cd @ x
        else:
            self.flagLost += 1
        gain = gains[min(self.flagLost, len(gains) - 1)]
        xNext = xNext + gain @ self.lastError

        if (self.flagLost >= len(gains)):
            log.debug('seq %d: %d consecutive losses exceed gain table, '
                      'reusing last gain', message.sequenceNumber,
                      self.flagLost)
        self.estimate = xNext
        return xNext.copy(), self.state

    @staticmethod
    def _checkGains(gains:Any, plant:NcsPlant)->List[NPFltArr]:
        if (gains is None):
            raise DimensionMismatchError('l is missing, expected a sequence '
                                         'of observer gains')
        if isinstance(gains, np.ndarray) and (gains.ndim == 2):
            gains = [gains]
        gains = [_checkGain(g, (plant.stateSize, plant.outputSize), f'l[{i}]')
                 for i, g in enumerate(gains)]
        if not (gains):
            raise DimensionMismatchError('l must hold at least one gain')
        return gains

###############################################################################

def _initialEstimate(params:Params, plant:NcsPlant)->NPFltArr:
    x0 = params.get('x0')
    if (x0 is None):
        return np.zeros(plant.stateSize)
    x0 = np.asarray(x0, dtype=np.float64).reshape(-1)
    if (x0.size != plant.stateSize):
        raise DimensionMismatchError(
            f'x0 must have {plant.stateSize} values, got {x0.size}')
    return x0

###############################################################################

def _splitOutputInput(message:NetworkMsg,
                      plant:NcsPlant)->Tuple[NPFltArr, NPFltArr]:
    """Split observer payload into (y, u); NaN inputs are read as zero."""

    y = _payloadSlice(message, 0, plant.outputSize, 'output')
    u = _payloadSlice(message, plant.outputSize, plant.inputSize, 'input')
    if (np.isnan(u).any()):
        log.debug('seq %d: input lost, using zero input',
                  message.sequenceNumber)
        u = np.nan_to_num(u, nan=0.0)
    return y, u

###############################################################################

# Strategy registries {name: factory(plant, params)}
Factory = Callable[[Optional[NcsPlant], Optional[Params]], Any]

CONTROL_STRATEGIES:Dict[str, Factory] = {
    'ramp': Ramp,
    'statefeedback': StateFeedback,
    'statefeedbackstrategy': StateFeedback,
    'liftedstatefeedback': LiftedStateFeedback,
    'extendedstatefeedback': LiftedStateFeedback,
    'extendedstatefeedbackstrategy': LiftedStateFeedback,
}

OBSERVER_STRATEGIES:Dict[str, Factory] = {
    'ramp': RampObserver,
    'rampo': RampObserver,
    'rampobserver': RampObserver,
    'luenberger': LuenbergerObserver,
    'luenbergerobserver': LuenbergerObserver,
    'luenbergerobserverstrategy': LuenbergerObserver,
    'switchedgain': SwitchedGainObserver,
    'switchedgainobserver': SwitchedGainObserver,
    'switchedlyap': SwitchedGainObserver,
    'switchedlyapstrategy': SwitchedGainObserver,
}

###############################################################################

def _lookup(registry:Dict[str, Factory], name:str, kind:str)->Factory:
    try:
        return registry[str(name).lower()]
    except KeyError:
        raise UnknownStrategyError(
            f"Unknown {kind} strategy '{name}'. "
            f"Available: {', '.join(sorted(registry))}") from None

###############################################################################

def getControlStrategy(name:str)->Factory:
    """
    Return control strategy factory registered under name.

    Lookup is case-insensitive.

    Raises
    ------
    UnknownStrategyError
        If name is not registered.
    """

    return _lookup(CONTROL_STRATEGIES, name, 'control')

###############################################################################

def getObserverStrategy(name:str)->Factory:
    """
    Return observer strategy factory registered under name.

    Raises
    ------
    UnknownStrategyError
        If name is not registered.
    """

    return _lookup(OBSERVER_STRATEGIES, name, 'observer')

###############################################################################

def registerControlStrategy(name:str, factory:Factory)->None:
    """Register a control strategy factory(plant, params) under name."""
    CONTROL_STRATEGIES[name.lower()] = factory
    log.debug('Registered control strategy %s', name)

###############################################################################

def registerObserverStrategy(name:str, factory:Factory)->None:
    """Register an observer strategy factory(plant, params) under name."""
    OBSERVER_STRATEGIES[name.lower()] = factory
    log.debug('Registered observer strategy %s', name)

###############################################################################
