"""
Endpoint nodes of a networked control loop.

Every node has an integer id, a list of next-node targets and a reference to
the SimKernel it is attached to. Nodes only interact through messages handed
to the kernel, so each node exclusively owns its buffers, histories and
strategy state.


Classes
-------
**Base**
    NetworkNode
        Abstract node with id, targets, kernel attachment and send helper.

**Endpoints**
    SensorNode
        Periodic sampler, origin of the sequence-numbered message stream.
    ActuatorNode
        Terminal sink recording (time, payload, seq) of received messages.
    ControllerNode
        Runs a ControlStrategy on every received message.
    ObserverNode
        Runs an ObserverStrategy on every received message.
    MsgRejection
        Forwards only the newest message by sampling time.


Notes
-----
**Node Ids:**

Id 0 is reserved as "no target". Entries of nextNode equal to 0 are skipped
when sending.

**Lifecycle:**

1. Construct the node with its configuration.
2. attach(kernel) registers it under its id.
3. init() clears buffers and histories and creates the initial tasks.
4. The kernel calls receive(message) for every delivered message.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import (Any, Callable, Dict, Iterable, List, Optional, Type,
                    Union, TYPE_CHECKING)
from typing_extensions import Self
from numpy.typing import NDArray, ArrayLike
import numpy as np
if (TYPE_CHECKING):
    from ncsnet.kernel import SimKernel
from ncsnet import logger
from ncsnet.errors import ConfigurationError, InvalidTypeError
from ncsnet.history import HistoryLog
from ncsnet.kernel import NO_NODE, TIME_TOL
from ncsnet.messages import NetworkMsg, makeMsg
from ncsnet.plant import NcsPlant
from ncsnet import strategies as strat

#-----------------------------------------------------------------------------#

# Type Aliases
NPFltArr = NDArray[np.float64]
StrategyRef = Union[str, Type[Any], Any]

# Global Variables
log = logger.addLog('nodes')

###############################################################################

def asTargets(nextNode:Union[int, Iterable[int], None])->List[int]:
    """Return next-node ids as a list of int (None gives [])."""

    if (nextNode is None):
        return []
    return [int(n) for n in np.atleast_1d(nextNode).reshape(-1)]

###############################################################################

class NetworkNode(ABC):
    """
    Base class of every node in the simulated network.

    Parameters
    ----------
    nOut : int
        Number of analog output channels.
    nIn : int
        Number of analog input channels.
    nextNode : int or sequence of int
        Ids of the nodes receiving this node's messages.
    nodeNr : int
        Unique node id (> 0).

    Attributes
    ----------
    nodeId : int
        Node id.
    nextNode : list of int
        Target node ids.
    kernel : SimKernel or None
        Kernel the node is attached to.
    """

    ## Constructor ===========================================================#
    def __init__(self,
                 nOut:int,
                 nIn:int,
                 nextNode:Union[int, Iterable[int], None],
                 nodeNr:int,
                 )->None:
        self.nOut = int(nOut)
        self.nIn = int(nIn)
        self.nextNode = asTargets(nextNode)
        self.nodeId = int(nodeNr)
        self.kernel:Optional[SimKernel] = None

    ## Special Methods =======================================================#
    def __repr__(self)->str:
        return (f"{self.__class__.__name__}("
                f"nodeId={self.nodeId}, "
                f"nextNode={self.nextNode})")

    ## Methods ===============================================================#
    def attach(self, kernel:SimKernel)->Self:
        """Register node on kernel and keep the kernel reference."""
        kernel.register(self)
        self.kernel = kernel
        return self

    #--------------------------------------------------------------------------
    def now(self)->float:
        """Current virtual time of the attached kernel."""
        if (self.kernel is None):
            raise ConfigurationError(
                f'node {self.nodeId} is not attached to a kernel')
        return self.kernel.now()

    #--------------------------------------------------------------------------
    @abstractmethod
    def init(self)->None:
        """Clear node state and create initial tasks."""
        raise NotImplementedError

    #--------------------------------------------------------------------------
    @abstractmethod
    def receive(self, message:NetworkMsg)->None:
        """Handle message delivered by the kernel."""
        raise NotImplementedError

    ## Helper Methods ========================================================#
    def _checkMsg(self, message:Any)->None:
        if not isinstance(message, NetworkMsg):
            raise InvalidTypeError(
                f'{self.__class__.__name__} {self.nodeId} can only process '
                f'NetworkMsg objects, got {type(message).__name__}')

    #--------------------------------------------------------------------------
    def _sendToNext(self, message:NetworkMsg)->None:
        """Send message to every non-zero target and output its payload."""
        if (self.kernel is None):
            raise ConfigurationError(
                f'node {self.nodeId} is not attached to a kernel')
        bits = message.sizeBits
        for target in self.nextNode:
            if (target != NO_NODE):
                self.kernel.send(target, message, bits)
        self._analogOut(message.payload)

    #--------------------------------------------------------------------------
    def _analogOut(self, values:NPFltArr)->None:
        n = self.nOut if (self.nOut > 0) else values.size
        self.kernel.analogOutput(self.nodeId, values[:n])

###############################################################################

class SensorNode(NetworkNode):
    """
    Periodic sampler at the start of the control loop.

    Samples every sampleTime from startTime, stamps messages with sequence
    numbers starting at 1 and sends them to the next nodes.

    Parameters
    ----------
    nIn : int
        Number of sampled values.
    nextNode : int or sequence of int
        Target node ids.
    nodeNr : int
        Node id.
    sampleTime : float
        Sampling period (s).
    sampleFcn : callable, optional
        sampleFcn(time, seq) -> array_like of nIn values. Defaults to zeros.
    startTime : float, default=0.0
        Time of the first sample.
    endTime : float, optional
        No samples are taken after endTime. Unbounded by default.

    Attributes
    ----------
    seq : int
        Sequence number of the last sample.
    sampleHistory : HistoryLog
        Sampled values.
    sampleTimeHistory : HistoryLog
        Sampling times.
    """

    ## Constructor ===========================================================#
    def __init__(self,
                 nIn:int,
                 nextNode:Union[int, Iterable[int]],
                 nodeNr:int,
                 sampleTime:float,
                 sampleFcn:Optional[Callable[[float, int], ArrayLike]]=None,
                 startTime:float=0.0,
                 endTime:Optional[float]=None,
                 )->None:
        super().__init__(nIn, nIn, nextNode, nodeNr)
        if (sampleTime <= 0):
            raise ConfigurationError(
                f'sampleTime must be positive, got {sampleTime}')
        self.sampleTime = float(sampleTime)
        self.sampleFcn = sampleFcn
        self.startTime = float(startTime)
        self.endTime = endTime
        self.seq = 0
        self.sampleHistory = HistoryLog(nIn, f'sensor{nodeNr:03d}')
        self.sampleTimeHistory = HistoryLog(1, f'sensorTime{nodeNr:03d}')

    ## Methods ===============================================================#
    def init(self)->None:
        self.seq = 0
        self.sampleHistory.clear()
        self.sampleTimeHistory.clear()
        self.kernel.scheduleCallback(self._sampleTask, self.startTime)

    #--------------------------------------------------------------------------
    def receive(self, message:NetworkMsg)->None:
        log.warning('Sensor %03d ignores message seq %d from %03d',
                    self.nodeId, message.sequenceNumber, message.originNodeId)

    ## Helper Methods ========================================================#
    def _sampleTask(self)->None:
        """Take one sample, send it, schedule the next one."""

        self.seq += 1
        t = self.now()
        if (self.sampleFcn is None):
            data = np.zeros(self.nIn)
        else:
            data = np.atleast_1d(np.asarray(self.sampleFcn(t, self.seq),
                                            dtype=np.float64))
        msg = makeMsg(t, data, self.seq, self.nodeId)
        self.sampleHistory.append(data)
        self.sampleTimeHistory.append(t)
        log.debug('Sensor %03d sample seq %d', self.nodeId, self.seq)
        self._sendToNext(msg)

        # Schedule from start time to avoid accumulating rounding errors
        nextTime = self.startTime + self.seq * self.sampleTime
        if ((self.endTime is None) or (nextTime <= self.endTime + TIME_TOL)):
            self.kernel.scheduleCallback(self._sampleTask, nextTime)

###############################################################################

class ActuatorNode(NetworkNode):
    """
    Terminal sink of the control loop.

    Parameters
    ----------
    nOut : int
        Number of actuated values.
    nodeNr : int
        Node id.
    actuateFcn : callable, optional
        actuateFcn(time, payload) called on every received message, e.g. to
        apply the control signal to a plant process.

    Attributes
    ----------
    payloadHistory : HistoryLog
        Received payloads.
    receiveTimeHistory : HistoryLog
        Virtual time of every reception.
    seqHistory : HistoryLog
        Sequence numbers of received messages.
    """

    def __init__(self,
                 nOut:int,
                 nodeNr:int,
                 actuateFcn:Optional[Callable[[float, NPFltArr], None]]=None,
                 )->None:
        super().__init__(nOut, nOut, None, nodeNr)
        self.actuateFcn = actuateFcn
        self.payloadHistory = HistoryLog(nOut if nOut > 0 else None,
                                         f'actuator{nodeNr:03d}')
        self.receiveTimeHistory = HistoryLog(1, f'actuatorTime{nodeNr:03d}')
        self.seqHistory = HistoryLog(1, f'actuatorSeq{nodeNr:03d}')

    def init(self)->None:
        self.payloadHistory.clear()
        self.receiveTimeHistory.clear()
        self.seqHistory.clear()

    def receive(self, message:NetworkMsg)->None:
        self._checkMsg(message)
        t = self.now()
        self.payloadHistory.append(message.payload)
        self.receiveTimeHistory.append(t)
        self.seqHistory.append(message.sequenceNumber)
        self._analogOut(message.payload)
        if (self.actuateFcn is not None):
            self.actuateFcn(t, message.payload)

    @property
    def receivedSeqs(self)->List[int]:
        """Sequence numbers received so far, in arrival order."""
        return [int(s) for s in self.seqHistory.data[:, 0]]

###############################################################################

class MsgRejection(NetworkNode):
    """
    Forward only the newest message by sampling time.

    Every arrival triggers a send. If the arrival is newer than the last
    forwarded message it replaces it; otherwise the last forwarded message is
    sent again, so outdated data never reaches the next node.

    Attributes
    ----------
    sentMsg : NetworkMsg or None
        Newest message, stamped with this node's id.
    inbox : HistoryLog
        Payloads of all received messages.
    inboxTime : HistoryLog
        Arrival times of all received messages.
    """

    def __init__(self,
                 nOut:int,
                 nextNode:Union[int, Iterable[int]],
                 nodeNr:int,
                 )->None:
        super().__init__(nOut, 0, nextNode, nodeNr)
        self.sentMsg:Optional[NetworkMsg] = None
        self.inbox = HistoryLog(nOut if nOut > 0 else None,
                                f'inbox{nodeNr:03d}')
        self.inboxTime = HistoryLog(1, f'inboxTime{nodeNr:03d}')

    def init(self)->None:
        self.sentMsg = None
        self.inbox.clear()
        self.inboxTime.clear()

    def receive(self, message:NetworkMsg)->None:
        self._checkMsg(message)
        self.inboxTime.append(self.now())
        self.inbox.append(message.payload)

        if ((self.sentMsg is None) or
            (message.samplingTimestamp > self.sentMsg.samplingTimestamp)):
            self.sentMsg = message.copy(originNodeId=self.nodeId)
        else:
            log.debug('Node %03d rejects outdated seq %d (newest seq %d)',
                      self.nodeId, message.sequenceNumber,
                      self.sentMsg.sequenceNumber)
        self._sendToNext(self.sentMsg)

###############################################################################

def resolveStrategy(strategy:StrategyRef,
                    lookup:Callable[[str], Any],
                    base:type,
                    plant:Optional[NcsPlant],
                    params:Dict[str, Any],
                    )->Any:
    """
    Build a strategy from a registry name, a strategy class or an instance.

    Raises
    ------
    UnknownStrategyError
        If a name is not registered.
    InvalidTypeError
        If strategy is neither a name, a base subclass nor an instance of base.
    """

    if isinstance(strategy, str):
        return lookup(strategy)(plant, params)
    if isinstance(strategy, base):
        return strategy
    if isinstance(strategy, type) and issubclass(strategy, base):
        return strategy(plant, params)
    raise InvalidTypeError(f'cannot build {base.__name__} from '
                           f'{type(strategy).__name__}')

###############################################################################

class ControllerNode(NetworkNode):
    """
    Node running a control strategy on every received message.

    The outgoing message keeps the sampling timestamp and sequence number of
    the received one, carries the control signal as payload and is stamped
    with this node's id and the current time.

    Parameters
    ----------
    nOut : int
        Number of control signals.
    nextNode : int or sequence of int
        Target node ids.
    nodeNr : int
        Node id.
    strategy : str, ControlStrategy subclass or instance
        Control law. Names are looked up in strategies.CONTROL_STRATEGIES.
    controlParams : dict, optional
        Parameters passed to the strategy.
    plant : NcsPlant, optional
        Plant model passed to the strategy.

    Attributes
    ----------
    controlStrategy : ControlStrategy
        Strategy instance owned by this node.
    controlSignalHistory : HistoryLog
        Control signals.
    sendTimeHistory : HistoryLog
        Virtual time of every control update.
    liftedStateHistory : HistoryLog
        Lifted states, filled by strategies that report one.

    Raises
    ------
    UnknownStrategyError
        If strategy is a name that is not registered.
    """

    ## Constructor ===========================================================#
    def __init__(self,
                 nOut:int,
                 nextNode:Union[int, Iterable[int]],
                 nodeNr:int,
                 strategy:StrategyRef,
                 controlParams:Optional[Dict[str, Any]]=None,
                 plant:Optional[NcsPlant]=None,
                 )->None:
        super().__init__(nOut, 0, nextNode, nodeNr)
        self.controlParams = {} if (controlParams is None) else controlParams
        self.plant = plant
        self._strategyRef = strategy
        self.controlStrategy = resolveStrategy(strategy,
                                               strat.getControlStrategy,
                                               strat.ControlStrategy,
                                               plant, self.controlParams)
        self.controlSignalHistory = HistoryLog(nOut, f'u{nodeNr:03d}')
        self.sendTimeHistory = HistoryLog(1, f'uTime{nodeNr:03d}')
        self.liftedStateHistory = HistoryLog(None, f'lifted{nodeNr:03d}')
        log.info('Controller %03d using %s', nodeNr,
                 self.controlStrategy.__class__.__name__)

    ## Methods ===============================================================#
    def init(self)->None:
        # Fresh strategy state unless an instance was handed in
        if not isinstance(self._strategyRef, strat.ControlStrategy):
            self.controlStrategy = resolveStrategy(
                self._strategyRef, strat.getControlStrategy,
                strat.ControlStrategy, self.plant, self.controlParams)
        self.controlSignalHistory.clear()
        self.sendTimeHistory.clear()
        self.liftedStateHistory.clear()

    #--------------------------------------------------------------------------
    def receive(self, message:NetworkMsg)->None:
        self._checkMsg(message)
        signal, state = self.controlStrategy.execute(message,
                                                     self.controlParams,
                                                     self.plant)
        t = self.now()
        self.controlSignalHistory.append(signal)
        self.sendTimeHistory.append(t)
        if ('liftedState' in state):
            self.liftedStateHistory.append(state['liftedState'])

        out = makeMsg(message.samplingTimestamp, signal,
                      message.sequenceNumber, self.nodeId,
                      lastTransmitTimestamp=t)
        log.debug('Controller %03d seq %d -> %s', self.nodeId,
                  message.sequenceNumber, out.payload.tolist())
        self._sendToNext(out)

###############################################################################

class ObserverNode(NetworkNode):
    """
    Node running an observer strategy on every received message.

    The outgoing message is a copy of the received one with the estimate as
    payload, stamped with this node's id and the current time.

    Parameters
    ----------
    nOut : int
        Number of estimated states.
    nextNode : int or sequence of int
        Target node ids.
    nodeNr : int
        Node id.
    strategy : str, ObserverStrategy subclass or instance
        Estimator. Names are looked up in strategies.OBSERVER_STRATEGIES.
    observerParams : dict, optional
        Parameters passed to the strategy.
    plant : NcsPlant, optional
        Plant model passed to the strategy.

    Attributes
    ----------
    observerStrategy : ObserverStrategy
        Strategy instance owned by this node.
    estimatesHistory : HistoryLog
        State estimates.
    sendTimeHistory : HistoryLog
        Virtual time of every estimate.

    Raises
    ------
    UnknownStrategyError
        If strategy is a name that is not registered.
    """

    ## Constructor ===========================================================#
    def __init__(self,
                 nOut:int,
                 nextNode:Union[int, Iterable[int]],
                 nodeNr:int,
                 strategy:StrategyRef,
                 observerParams:Optional[Dict[str, Any]]=None,
                 plant:Optional[NcsPlant]=None,
                 )->None:
        super().__init__(nOut, 0, nextNode, nodeNr)
        self.observerParams = {} if (observerParams is None) else observerParams
        self.plant = plant
        self._strategyRef = strategy
        self.observerStrategy = resolveStrategy(strategy,
                                                strat.getObserverStrategy,
                                                strat.ObserverStrategy,
                                                plant, self.observerParams)
        self.estimatesHistory = HistoryLog(nOut, f'xhat{nodeNr:03d}')
        self.sendTimeHistory = HistoryLog(1, f'xhatTime{nodeNr:03d}')
        log.info('Observer %03d using %s', nodeNr,
                 self.observerStrategy.__class__.__name__)

    ## Methods ===============================================================#
    def init(self)->None:
        if not isinstance(self._strategyRef, strat.ObserverStrategy):
            self.observerStrategy = resolveStrategy(
                self._strategyRef, strat.getObserverStrategy,
                strat.ObserverStrategy, self.plant, self.observerParams)
        self.estimatesHistory.clear()
        self.sendTimeHistory.clear()

    #--------------------------------------------------------------------------
    def receive(self, message:NetworkMsg)->None:
        self._checkMsg(message)
        estimates, _ = self.observerStrategy.execute(message,
                                                     self.observerParams,
                                                     self.plant)
        t = self.now()
        self.estimatesHistory.append(estimates)
        self.sendTimeHistory.append(t)
        out = message.copy(payload=estimates, originNodeId=self.nodeId,
                           lastTransmitTimestamps=(
                               message.lastTransmitTimestamp, t))
        self._sendToNext(out)

###############################################################################
