"""
Transport nodes modelling network effects between control loop endpoints.

The nodes in this module sit on the links of a control loop and delay, drop,
re-order, buffer or join the messages passing through them. All timing is
virtual: a node computes when a message is released and asks the SimKernel to
wake it at that time.


Classes
-------
**Variable Delay**
    VariableDelay
        Abstract two-phase node. ingest() computes the transmit time of an
        arriving message through calculateTransmitTime() and buffers it; a
        single scheduled send task releases buffered messages when due.

**Delay and Loss Policies (VariableDelay subclasses)**
    NetworkDelay
        Constant or per-sequence delay table.
    NetworkDropoutSimple
        Silent loss from a per-sequence loss mask.
    NetworkDropoutDetection
        Flagged loss: lost data is delivered as NaN at the worst-case delay.
    NetworkDelayWithDropouts
        Delay with tolerance for a bounded number of consecutive losses.
    NetworkBuffer
        Fixed-offset or multirate dispatch buffer.

**Stream Processing**
    NetworkOrderer
        Re-emits messages in strict transaction sequence order.
    NetworkPairer
        Joins two message streams by sequence number.


Notes
-----
**Sequence Indexing:**

Per-sequence tables (delays, loss masks) are plain vectors. Entry i (0-based)
belongs to sequence number i+1, since sequence numbers start at 1. A message
whose own sequence number falls outside a table raises IndexError. Loss masks
hold 1 for delivered and 0 for lost.

**Causality:**

A transmit time earlier than the current virtual time (beyond TIME_TOL) raises
CausalityViolationError and aborts the run. It means a policy or a delay table
is inconsistent with the traffic it is given.

**Send Task:**

A VariableDelay node has at most one pending send job. A message that becomes
due earlier than the current buffer head cancels that job and schedules a new
one for itself. On wake, the task re-checks that the head is due (within
SEND_TOL) and otherwise sleeps again.

**Logging:**

Transport events are logged on the network logger (logger.setupNet), at DEBUG
for normal traffic and WARNING for discarded messages.
"""

from __future__ import annotations
from abc import abstractmethod
from typing import Iterable, Optional, Tuple, Union
from numpy.typing import NDArray, ArrayLike
import math
import numpy as np
from ncsnet import logger
from ncsnet.errors import CausalityViolationError, ConfigurationError
from ncsnet.history import HistoryLog
from ncsnet.kernel import Job, TIME_TOL
from ncsnet.messages import BufferElement, MsgBuffer, NetworkMsg
from ncsnet.nodes import NetworkNode

#-----------------------------------------------------------------------------#

# Type Aliases
NPFltArr = NDArray[np.float64]

# Global Variables
log = logger.setupNet(file=False)

# Timing constants (s)
EPS = 1e-6              # Release just ahead of the nominal time
LOST_DELAY = 1e5        # Offset of the "never delivered" transmit time
SEND_TOL = 1e-8         # Head counts as due within this margin

###############################################################################

def lookupSeq(table:NPFltArr, seq:int, label:str)->float:
    """
    Return the table entry of sequence number seq (1-based).

    Raises
    ------
    IndexError
        If seq is outside 1..len(table).
    """

    if not (1 <= seq <= table.size):
        raise IndexError(f'{label} has no entry for sequence number {seq} '
                         f'(valid 1..{table.size})')
    return float(table[seq - 1])

###############################################################################

def asTable(values:ArrayLike, label:str)->NPFltArr:
    """Return per-sequence table as 1-D float array."""

    table = np.asarray(values, dtype=np.float64).reshape(-1)
    if not (table.size):
        raise ConfigurationError(f'{label} is empty')
    return table

###############################################################################

class VariableDelay(NetworkNode):
    """
    Abstract node releasing each message at a policy-defined transmit time.

    Parameters
    ----------
    nOut : int
        Number of analog output channels.
    nextNode : int or sequence of int
        Target node ids.
    nodeNr : int
        Node id.

    Attributes
    ----------
    msgBuffer : MsgBuffer
        Messages waiting for release, head first after sorting.
    nSent : int
        Number of messages released.

    Methods
    -------
    calculateTransmitTime(message)
        Abstract policy hook returning (transmitTime, outgoingMessage).
    ingest(message)
        Compute transmit time of an arrival and buffer it.
    """

    ## Constructor ===========================================================#
    def __init__(self,
                 nOut:int,
                 nextNode:Union[int, Iterable[int]],
                 nodeNr:int,
                 )->None:
        super().__init__(nOut, 0, nextNode, nodeNr)
        self.msgBuffer = MsgBuffer()
        self.nSent = 0
        self._sendJob:Optional[Job] = None

    ## Special Methods =======================================================#
    def __repr__(self)->str:
        return (f"{self.__class__.__name__}("
                f"nodeId={self.nodeId}, "
                f"nextNode={self.nextNode}, "
                f"buffered={self.msgBuffer.elementCount})")

    ## Properties ============================================================#
    @property
    def state(self)->str:
        """'Idle', 'Sleeping' or 'ReadyToSend'."""
        if (self.msgBuffer.elementCount == 0):
            return 'Idle'
        if (self.msgBuffer.getTop().transmitTime - self.now() > SEND_TOL):
            return 'Sleeping'
        return 'ReadyToSend'

    ## Methods ===============================================================#
    @abstractmethod
    def calculateTransmitTime(self,
                              message:NetworkMsg,
                              )->Tuple[float, NetworkMsg]:
        """
        Return transmit time and outgoing message for an arrival.

        The outgoing message is the received one or a modified copy.
        """
        raise NotImplementedError

    #--------------------------------------------------------------------------
    def init(self)->None:
        self.msgBuffer.clear()
        self.nSent = 0
        self._sendJob = None

    #--------------------------------------------------------------------------
    def receive(self, message:NetworkMsg)->None:
        self.ingest(message)

    #--------------------------------------------------------------------------
    def ingest(self, message:NetworkMsg)->None:
        """
        Compute transmit time of an arrival and place it in the buffer.

        Raises
        ------
        InvalidTypeError
            If message is not a NetworkMsg.
        CausalityViolationError
            If the transmit time lies before the current virtual time.
        """

        self._checkMsg(message)
        now = self.now()
        transmitTime, outMsg = self.calculateTransmitTime(message)
        transmitTime = float(transmitTime)
        if (transmitTime < now - TIME_TOL):
            raise CausalityViolationError(
                f'{self.__class__.__name__} {self.nodeId}: seq '
                f'{message.sequenceNumber} transmitTime {transmitTime:.9f}s '
                f'before current time {now:.9f}s', now, transmitTime)

        outMsg = outMsg.withTransmitTime(transmitTime)
        element = BufferElement(transmitTime, outMsg)

        if ((self.msgBuffer.elementCount == 0) or
            (transmitTime < self.msgBuffer.getTop().transmitTime)):
            # New head: preempt pending send
            if (self._sendJob is not None):
                self.kernel.cancelCallback(self._sendJob)
                self._sendJob = None
            self.msgBuffer.pushTop(element)
            self._scheduleSend()
            log.debug('[%03d] seq %d head, tx %.6fs', self.nodeId,
                      message.sequenceNumber, transmitTime)
        else:
            self.msgBuffer.pushBack(element)
            self.msgBuffer.sortBuffer()
            log.debug('[%03d] seq %d queued (%d), tx %.6fs', self.nodeId,
                      message.sequenceNumber, self.msgBuffer.elementCount,
                      transmitTime)

    ## Helper Methods ========================================================#
    def _scheduleSend(self)->None:
        """Sleep until the head transmit time, if any message is buffered."""
        if (self.msgBuffer.elementCount == 0):
            self._sendJob = None
            return
        wake = max(self.msgBuffer.getTop().transmitTime, self.now())
        self._sendJob = self.kernel.sleepUntil(self._sendTask, wake)

    #--------------------------------------------------------------------------
    def _sendTask(self)->None:
        """Release the head message if due, then sleep until the next one."""

        self._sendJob = None
        if (self.msgBuffer.elementCount == 0):
            return

        top = self.msgBuffer.getTop()
        if (top.transmitTime - self.now() > SEND_TOL):
            self._scheduleSend()
            return

        log.debug('[%03d] -> %s seq %d', self.nodeId, self.nextNode,
                  top.message.sequenceNumber)
        self._sendToNext(top.message)
        self.msgBuffer.popTop()
        self.nSent += 1
        self._scheduleSend()

###############################################################################

class NetworkDelay(VariableDelay):
    """
    Delay by a constant or a per-sequence table.

    transmitTime = delay[seq] + lastTransmitTimestamp

    Parameters
    ----------
    nOut : int
        Number of analog output channels.
    nextNode : int or sequence of int
        Target node ids.
    nodeNr : int
        Node id.
    delays : float or array_like
        Constant delay, or delay per sequence number (entry i for seq i+1).
    """

    def __init__(self,
                 nOut:int,
                 nextNode:Union[int, Iterable[int]],
                 nodeNr:int,
                 delays:Union[float, ArrayLike],
                 )->None:
        super().__init__(nOut, nextNode, nodeNr)
        self.constant = (np.ndim(delays) == 0)     # scalar applies to every seq
        self.delays = asTable(delays, 'delays')

    def calculateTransmitTime(self, message:NetworkMsg)->Tuple[float, NetworkMsg]:
        if (self.constant):
            tau = float(self.delays[0])
        else:
            tau = lookupSeq(self.delays, message.sequenceNumber, 'delays')
        return tau + message.lastTransmitTimestamp, message

###############################################################################

class NetworkDropoutSimple(VariableDelay):
    """
    Silent packet loss from a per-sequence loss mask.

    Delivered messages pass immediately; lost messages get a transmit time
    LOST_DELAY in the future and never reach the next node within a run.

    Parameters
    ----------
    nOut : int
        Number of analog output channels.
    nextNode : int or sequence of int
        Target node ids.
    nodeNr : int
        Node id.
    dataLoss : array_like
        Loss mask per sequence number, 1 delivered and 0 lost.
    """

    def __init__(self,
                 nOut:int,
                 nextNode:Union[int, Iterable[int]],
                 nodeNr:int,
                 dataLoss:ArrayLike,
                 )->None:
        super().__init__(nOut, nextNode, nodeNr)
        self.dataLoss = asTable(dataLoss, 'dataLoss')
        self.nLost = 0

    def init(self)->None:
        super().init()
        self.nLost = 0

    def isMsgLost(self, seq:int)->bool:
        """True if the mask marks sequence number seq as lost."""
        return not bool(lookupSeq(self.dataLoss, seq, 'dataLoss'))

    def calculateTransmitTime(self, message:NetworkMsg)->Tuple[float, NetworkMsg]:
        now = self.now()
        if (self.isMsgLost(message.sequenceNumber)):
            self.nLost += 1
            log.debug('[%03d] seq %d lost', self.nodeId,
                      message.sequenceNumber)
            return now + LOST_DELAY, message
        return now, message

###############################################################################

class NetworkDropoutDetection(NetworkDropoutSimple):
    """
    Packet loss that the receiver can detect.

    A lost message is released at samplingTimestamp + maxDelay - EPS with its
    payload replaced by NaN, so the receiver sees the loss at the worst-case
    delivery time. Delivered messages pass immediately.

    Parameters
    ----------
    nOut : int
        Number of analog output channels.
    nextNode : int or sequence of int
        Target node ids.
    nodeNr : int
        Node id.
    dataLoss : array_like
        Loss mask per sequence number, 1 delivered and 0 lost.
    maxDelay : float
        Worst-case delay bound tau_max (s).
    """

    def __init__(self,
                 nOut:int,
                 nextNode:Union[int, Iterable[int]],
                 nodeNr:int,
                 dataLoss:ArrayLike,
                 maxDelay:float,
                 )->None:
        super().__init__(nOut, nextNode, nodeNr, dataLoss)
        self.maxDelay = float(maxDelay)

    def calculateTransmitTime(self, message:NetworkMsg)->Tuple[float, NetworkMsg]:
        if (self.isMsgLost(message.sequenceNumber)):
            self.nLost += 1
            lostMsg = message.copy(payload=np.full(message.payload.size,
                                                   np.nan))
            log.debug('[%03d] seq %d lost, flagged', self.nodeId,
                      message.sequenceNumber)
            return message.samplingTimestamp + self.maxDelay - EPS, lostMsg
        return self.now(), message

###############################################################################

class NetworkDelayWithDropouts(VariableDelay):
    """
    Delay with tolerance for up to maxConsecutiveLoss consecutive losses.

    For a message with sequence number k, candidates are computed for the
    window offsets j = 0..maxConsecutiveLoss:

    - sequence k+j delivered: delay[k+j] + lastTransmitTimestamp
      + sampleTime*j - EPS
    - sequence k+j lost or beyond the tables: now + LOST_DELAY

    The transmit time is the smallest candidate. The receiver thereby accepts
    the first successfully delivered packet of the window in place of a lost
    one.

    Parameters
    ----------
    nOut : int
        Number of analog output channels.
    nextNode : int or sequence of int
        Target node ids.
    nodeNr : int
        Node id.
    delays : array_like
        Delay per sequence number (s). Entries must be at least EPS.
    dataLoss : array_like
        Loss mask per sequence number, 1 delivered and 0 lost.
    maxConsecutiveLoss : int
        Number of consecutive losses tolerated.
    sampleTime : float
        Sampling period (s).
    """

    def __init__(self,
                 nOut:int,
                 nextNode:Union[int, Iterable[int]],
                 nodeNr:int,
                 delays:ArrayLike,
                 dataLoss:ArrayLike,
                 maxConsecutiveLoss:int,
                 sampleTime:float,
                 )->None:
        super().__init__(nOut, nextNode, nodeNr)
        self.delays = asTable(delays, 'delays')
        self.dataLoss = asTable(dataLoss, 'dataLoss')
        if (int(maxConsecutiveLoss) < 0):
            raise ConfigurationError('maxConsecutiveLoss must be >= 0')
        self.maxConsecutiveLoss = int(maxConsecutiveLoss)
        self.sampleTime = float(sampleTime)

    def candidates(self, message:NetworkMsg, now:float)->NPFltArr:
        """Return the transmit time candidate of every window offset."""

        seq = message.sequenceNumber
        # Own entries must exist
        lookupSeq(self.delays, seq, 'delays')
        lookupSeq(self.dataLoss, seq, 'dataLoss')

        last = message.lastTransmitTimestamp
        nTable = min(self.delays.size, self.dataLoss.size)
        result = np.full(self.maxConsecutiveLoss + 1, now + LOST_DELAY)
        for j in range(self.maxConsecutiveLoss + 1):
            s = seq + j
            if ((s <= nTable) and (self.dataLoss[s - 1])):
                result[j] = (self.delays[s - 1] + last +
                             self.sampleTime * j - EPS)
        return result

    def calculateTransmitTime(self, message:NetworkMsg)->Tuple[float, NetworkMsg]:
        candidates = self.candidates(message, self.now())
        j = int(np.argmin(candidates))
        log.debug('[%03d] seq %d window offset %d', self.nodeId,
                  message.sequenceNumber, j)
        return float(candidates[j]), message

###############################################################################

class NetworkBuffer(VariableDelay):
    """
    Dispatch buffer with fixed or multirate release times.

    Parameters
    ----------
    nOut : int
        Number of analog output channels.
    nextNode : int or sequence of int
        Target node ids.
    nodeNr : int
        Node id.
    sampleTime : float
        Sampling period (s).
    dispatchStrategy : {'fixed', 'multirate'}, default='fixed'
        'fixed' releases at samplingTimestamp + fixedDelay. 'multirate' releases
        at the next boundary of sampleTime / numTransmissions.
    fixedDelay : float, default=0.0
        Offset used by 'fixed'.
    numTransmissions : int, default=1
        Sub-periods per sampling period used by 'multirate'.

    Raises
    ------
    ConfigurationError
        If dispatchStrategy is unknown or numTransmissions < 1.
    """

    def __init__(self,
                 nOut:int,
                 nextNode:Union[int, Iterable[int]],
                 nodeNr:int,
                 sampleTime:float,
                 dispatchStrategy:str='fixed',
                 fixedDelay:float=0.0,
                 numTransmissions:int=1,
                 )->None:
        super().__init__(nOut, nextNode, nodeNr)
        self.sampleTime = float(sampleTime)
        self.fixedDelay = float(fixedDelay)
        self.numTransmissions = int(numTransmissions)
        self.dispatchStrategy = dispatchStrategy

        dispatchStrategies = {
            # add more dispatch strategies here
            'fixed': self._transmitFixed,
            'multirate': self._transmitMultirate,
        }
        try:
            self._transmitTime = dispatchStrategies[dispatchStrategy.lower()]
        except KeyError:
            raise ConfigurationError(
                f"Invalid dispatch strategy '{dispatchStrategy}'. Use "
                f"{' or '.join(repr(k) for k in dispatchStrategies)}."
                ) from None
        if (self.numTransmissions < 1):
            raise ConfigurationError('numTransmissions must be >= 1')

    def calculateTransmitTime(self, message:NetworkMsg)->Tuple[float, NetworkMsg]:
        return self._transmitTime(message), message

    def _transmitFixed(self, message:NetworkMsg)->float:
        return message.samplingTimestamp + self.fixedDelay

    def _transmitMultirate(self, message:NetworkMsg)->float:
        subPeriod = self.sampleTime / self.numTransmissions
        # Tolerance keeps exact boundaries from rounding up a full sub-period
        return math.ceil(self.now() / subPeriod - TIME_TOL) * subPeriod

###############################################################################

class NetworkOrderer(NetworkNode):
    """
    Re-emit messages in strict transaction sequence order.

    Every arrival is keyed by round(samplingTimestamp / sampleTime) and
    buffered. The buffer head is released while its key equals awaitSeqNr,
    which is then incremented, so the output is gap free and strictly
    increasing. A missing key holds back everything behind it. Arrivals with a
    key below awaitSeqNr are discarded as duplicates.

    Parameters
    ----------
    nOut : int
        Number of analog output channels.
    nextNode : int or sequence of int
        Target node ids.
    nodeNr : int
        Node id.
    sampleTime : float
        Sampling period (s).
    awaitSeqNr : int, default=0
        First expected key. A stream sampled from t=0 starts at key 0.

    Attributes
    ----------
    msgBuffer : MsgBuffer
        Held messages keyed by transaction number.
    sentMsgDataHistory : HistoryLog
        Released payloads.
    sentMsgTimeHistory : HistoryLog
        Release times.
    nDiscarded : int
        Arrivals discarded as duplicates.
    """

    ## Constructor ===========================================================#
    def __init__(self,
                 nOut:int,
                 nextNode:Union[int, Iterable[int]],
                 nodeNr:int,
                 sampleTime:float,
                 awaitSeqNr:int=0,
                 )->None:
        super().__init__(nOut, 0, nextNode, nodeNr)
        self.sampleTime = float(sampleTime)
        self.firstSeqNr = int(awaitSeqNr)
        self.awaitSeqNr = int(awaitSeqNr)
        self.msgBuffer = MsgBuffer()
        self.nDiscarded = 0
        self.sentMsgDataHistory = HistoryLog(nOut if nOut > 0 else None,
                                             f'ordered{nodeNr:03d}')
        self.sentMsgTimeHistory = HistoryLog(1, f'orderedTime{nodeNr:03d}')

    ## Methods ===============================================================#
    def init(self)->None:
        self.awaitSeqNr = self.firstSeqNr
        self.msgBuffer.clear()
        self.nDiscarded = 0
        self.sentMsgDataHistory.clear()
        self.sentMsgTimeHistory.clear()

    #--------------------------------------------------------------------------
    def transactionKey(self, message:NetworkMsg)->int:
        """Return round(samplingTimestamp / sampleTime)."""
        return int(round(message.samplingTimestamp / self.sampleTime))

    #--------------------------------------------------------------------------
    def receive(self, message:NetworkMsg)->None:
        self._checkMsg(message)
        self.enqueueMsg(message)
        self.sendTopMsg()

    #--------------------------------------------------------------------------
    def enqueueMsg(self, message:NetworkMsg)->None:
        """Stamp arrival with this node's id and buffer it by key."""

        key = self.transactionKey(message)
        if (key < self.awaitSeqNr):
            self.nDiscarded += 1
            log.warning('[%03d] discard key %d (seq %d), awaiting %d',
                        self.nodeId, key, message.sequenceNumber,
                        self.awaitSeqNr)
            return
        msg = message.copy(originNodeId=self.nodeId)
        self.msgBuffer.pushBack(BufferElement(key, msg))
        self.msgBuffer.sortBuffer()
        if (key != self.awaitSeqNr):
            log.debug('[%03d] hold key %d, awaiting %d', self.nodeId, key,
                      self.awaitSeqNr)

    #--------------------------------------------------------------------------
    def sendTopMsg(self)->int:
        """
        Release buffer heads while they match awaitSeqNr.

        Returns
        -------
        int
            Number of messages released.
        """

        nSent = 0
        while (self.msgBuffer.elementCount > 0):
            top = self.msgBuffer.getTop()
            if (top.transmitTime < self.awaitSeqNr):
                # Duplicate of a released key
                self.msgBuffer.popTop()
                self.nDiscarded += 1
                log.warning('[%03d] discard duplicate key %d', self.nodeId,
                            int(top.transmitTime))
                continue
            if (top.transmitTime != self.awaitSeqNr):
                break

            self._sendToNext(top.message)
            self.sentMsgDataHistory.append(top.message.payload)
            self.sentMsgTimeHistory.append(self.now())
            self.msgBuffer.popTop()
            self.awaitSeqNr += 1
            nSent += 1
        return nSent

###############################################################################

class NetworkPairer(NetworkNode):
    """
    Join two message streams by sequence number.

    Messages are routed to stream A or B by their originNodeId. A message
    waits in its stream buffer until the message with the same sequence number
    arrives on the other stream; the pair is then combined into one message
    with payload [A, B], stamped with the current time and this node's id, and
    sent. Keys below bootstrapBelow arriving on stream A are paired at once
    with defaultB, since no stream-B counterpart exists at stream start; a
    stream-B message arriving later for such a key is discarded.

    Parameters
    ----------
    nOut : int
        Number of analog output channels.
    nextNode : int or sequence of int
        Target node ids.
    nodeNr : int
        Node id.
    sourceIdA : int
        Id stamped on stream A messages (e.g. sensor side).
    sourceIdB : int
        Id stamped on stream B messages (e.g. controller side).
    bootstrapBelow : int, default=0
        Stream A keys below this value pair with defaultB. 0 disables.
    defaultB : array_like, optional
        Stream B part used for bootstrapped keys.
    sizeB : int, default=1
        Length of the zero default if defaultB is not given.

    Attributes
    ----------
    msgBufferA, msgBufferB : MsgBuffer
        Unmatched messages per stream, keyed by sequence number.
    msgBufferSend : MsgBuffer
        Combined messages waiting to be sent.
    nPaired : int
        Number of combined messages emitted.
    """

    ## Constructor ===========================================================#
    def __init__(self,
                 nOut:int,
                 nextNode:Union[int, Iterable[int]],
                 nodeNr:int,
                 sourceIdA:int,
                 sourceIdB:int,
                 bootstrapBelow:int=0,
                 defaultB:Optional[ArrayLike]=None,
                 sizeB:int=1,
                 )->None:
        super().__init__(nOut, 0, nextNode, nodeNr)
        if (int(sourceIdA) == int(sourceIdB)):
            raise ConfigurationError('pairer sources must differ')
        self.sourceIdA = int(sourceIdA)
        self.sourceIdB = int(sourceIdB)
        self.bootstrapBelow = int(bootstrapBelow)
        if (defaultB is None):
            defaultB = np.zeros(sizeB)
        self.defaultB = np.atleast_1d(np.asarray(defaultB, dtype=np.float64))
        self.msgBufferA = MsgBuffer()
        self.msgBufferB = MsgBuffer()
        self.msgBufferSend = MsgBuffer()
        self.nPaired = 0
        self._bootstrappedKeys = set()

    ## Methods ===============================================================#
    def init(self)->None:
        self.msgBufferA.clear()
        self.msgBufferB.clear()
        self.msgBufferSend.clear()
        self.nPaired = 0
        self._bootstrappedKeys.clear()

    #--------------------------------------------------------------------------
    def receive(self, message:NetworkMsg)->None:
        self._checkMsg(message)
        if (message.originNodeId == self.sourceIdA):
            self._processMsg(message, isA=True)
        elif (message.originNodeId == self.sourceIdB):
            self._processMsg(message, isA=False)
        else:
            log.warning('[%03d] drop seq %d from unknown source %03d',
                        self.nodeId, message.sequenceNumber,
                        message.originNodeId)
            return
        self.sendTopPairedMsg()

    #--------------------------------------------------------------------------
    def sendTopPairedMsg(self)->None:
        """Send every combined message in the send buffer."""
        while (self.msgBufferSend.elementCount > 0):
            self._sendToNext(self.msgBufferSend.getTop().message)
            self.msgBufferSend.popTop()

    ## Helper Methods ========================================================#
    def _processMsg(self, message:NetworkMsg, isA:bool)->None:
        key = message.sequenceNumber
        own, other = ((self.msgBufferA, self.msgBufferB) if (isA) else
                      (self.msgBufferB, self.msgBufferA))

        if (key in self._bootstrappedKeys):
            log.debug('[%03d] seq %d already bootstrapped, discard',
                      self.nodeId, key)
            return

        index = other.findKey(key)
        if (index is None):
            if ((isA) and (key < self.bootstrapBelow)):
                self._bootstrappedKeys.add(key)
                self._emitPair(message, self.defaultB, key)
            else:
                own.pushBack(BufferElement(key, message))
                own.sortBuffer()
            return

        match = other.removeAt(index).message
        msgA, msgB = (message, match) if (isA) else (match, message)
        self._emitPair(msgA, msgB.payload, key)

    #--------------------------------------------------------------------------
    def _emitPair(self, msgA:NetworkMsg, partB:NPFltArr, key:int)->None:
        now = self.now()
        combined = msgA.copy(
            payload=np.concatenate((msgA.payload, partB)),
            lastTransmitTimestamps=(msgA.lastTransmitTimestamp, now),
            originNodeId=self.nodeId)
        self.msgBufferSend.pushBack(BufferElement(key, combined))
        self.nPaired += 1
        log.debug('[%03d] paired seq %d', self.nodeId, key)

###############################################################################
