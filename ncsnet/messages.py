"""
Network messages and message buffers.

Defines the value type that travels between nodes of the simulated control
loop, the (transmit time, message) buffer entry, and the ordered buffer used by
every node that has to hold messages back.


Classes
-------
NetworkMsg
    Immutable message carrying payload, timestamps, sequence number and origin
    node id.
BufferElement
    Immutable (transmitTime, message) pair stored in a MsgBuffer.
MsgBuffer
    Ordered collection of BufferElements with head/tail operations.


Functions
---------
getMsgStruct()
    Return construct library binary structure of a NetworkMsg.
encodeMsg(msg)
    Serialize a NetworkMsg into bytes.
decodeMsg(data)
    Parse bytes into a NetworkMsg.


Notes
-----
Messages are never mutated. A node that needs to change a field derives a copy
with NetworkMsg.copy(), so a message held in one node's buffer cannot be altered
by another node. The payload array is stored read-only for the same reason.

The binary layout is not used for transport (messages are handed over as
objects); it provides the message size in bits reported to the event kernel
and a stable dump format for debugging.
"""

from dataclasses import dataclass, replace
from functools import lru_cache
from typing import Any, List, Optional, Sequence, Tuple, Union
from numpy.typing import NDArray
import construct as cst
import numpy as np
from ncsnet import logger
from ncsnet.errors import EmptyBufferError, InvalidTypeError

#-----------------------------------------------------------------------------#

# Type Aliases
NPFltArr = NDArray[np.float64]

# Global Variables
log = logger.addLog('msg')

# Message type flag
MSG_FLAG = b'NCSM'

###############################################################################

@dataclass(frozen=True)
class NetworkMsg:
    """
    Message exchanged between network nodes.

    Attributes
    ----------
    samplingTimestamp : float
        Virtual time at which the carried data was sampled.
    lastTransmitTimestamps : tuple of float
        Last two transmit timestamps (older, newer). A scalar given at
        construction is expanded to (t, t).
    payload : ndarray
        Data vector. Entries are finite reals, or NaN when a dropout policy has
        flagged the data as lost.
    sequenceNumber : int
        Sequence number, strictly increasing per origin stream, starting at 1.
    originNodeId : int
        Id of the node that last stamped the message.

    Notes
    -----
    Frozen dataclass with __slots__. Use copy() to derive modified messages.
    """

    __slots__ = ('samplingTimestamp', 'lastTransmitTimestamps', 'payload',
                 'sequenceNumber', 'originNodeId')

    samplingTimestamp: float
    lastTransmitTimestamps: Tuple[float, float]
    payload: NPFltArr
    sequenceNumber: int
    originNodeId: int

    def __post_init__(self)->None:
        ts = np.atleast_1d(np.asarray(self.lastTransmitTimestamps,
                                      dtype=np.float64))
        if (ts.size == 1):
            ts = np.array([ts[0], ts[0]])
        if (ts.size != 2):
            raise InvalidTypeError(
                'lastTransmitTimestamps must hold one or two values, '
                f'got {ts.size}')
        data = np.array(self.payload, dtype=np.float64).reshape(-1)
        data.flags.writeable = False
        object.__setattr__(self, 'samplingTimestamp',
                           float(self.samplingTimestamp))
        object.__setattr__(self, 'lastTransmitTimestamps',
                           (float(ts[0]), float(ts[1])))
        object.__setattr__(self, 'payload', data)
        object.__setattr__(self, 'sequenceNumber', int(self.sequenceNumber))
        object.__setattr__(self, 'originNodeId', int(self.originNodeId))

    @property
    def lastTransmitTimestamp(self)->float:
        """Most recent transmit timestamp."""
        return self.lastTransmitTimestamps[-1]

    @property
    def isLost(self)->bool:
        """True if any payload entry carries the lost sentinel (NaN)."""
        return bool(np.isnan(self.payload).any())

    @property
    def sizeBits(self)->int:
        """Size of the serialized message in bits."""
        return 8 * len(encodeMsg(self))

    def copy(self, **changes:Any)->'NetworkMsg':
        """Return a new message with the given fields replaced."""
        return replace(self, **changes)

    def withTransmitTime(self, transmitTime:float)->'NetworkMsg':
        """Return copy with transmitTime pushed into the timestamp ring."""
        return replace(self, lastTransmitTimestamps=(
            self.lastTransmitTimestamp, transmitTime))

    def __eq__(self, other:object)->bool:
        if not isinstance(other, NetworkMsg):
            return NotImplemented
        return ((self.samplingTimestamp == other.samplingTimestamp) and
                (self.lastTransmitTimestamps == other.lastTransmitTimestamps) and
                (self.sequenceNumber == other.sequenceNumber) and
                (self.originNodeId == other.originNodeId) and
                np.array_equal(self.payload, other.payload, equal_nan=True))

    def __repr__(self)->str:
        return (f"NetworkMsg(seq={self.sequenceNumber}, "
                f"node={self.originNodeId}, "
                f"ts={self.samplingTimestamp:.6f}, "
                f"tx={self.lastTransmitTimestamps}, "
                f"payload={self.payload.tolist()})")

###############################################################################

@dataclass(frozen=True)
class BufferElement:
    """
    Immutable (transmitTime, message) pair held by a MsgBuffer.

    Attributes
    ----------
    transmitTime : float
        Sort key of the element. Delay nodes store the virtual transmit time;
        orderer and pairer nodes store a transaction or sequence key.
    message : NetworkMsg
        Buffered message.

    Raises
    ------
    InvalidTypeError
        If message is not a NetworkMsg.
    """

    __slots__ = ('transmitTime', 'message')

    transmitTime: float
    message: NetworkMsg

    def __post_init__(self)->None:
        if not isinstance(self.message, NetworkMsg):
            raise InvalidTypeError(
                'BufferElement data must be a NetworkMsg, '
                f'got {type(self.message).__name__}')

###############################################################################

class MsgBuffer:
    """
    Ordered buffer of BufferElements.

    Elements are kept in insertion order until sortBuffer() is called, which
    orders them by ascending transmitTime. The sort is stable, so elements with
    equal transmitTime keep their FIFO order, and sorting twice yields the same
    order.

    Attributes
    ----------
    elements : list of BufferElement
        Buffered elements, head first.

    Methods
    -------
    pushTop(element)
        Insert element at the head.
    pushBack(element)
        Append element at the tail.
    popTop()
        Remove and return the head element.
    getTop()
        Return the head element without removing it.
    clear()
        Remove all elements.
    sortBuffer()
        Sort elements by ascending transmitTime.
    findKey(key)
        Index of the first element whose transmitTime equals key.
    removeAt(index)
        Remove and return the element at index.
    transmitTimes()
        Transmit times of all elements in buffer order.
    """

    ## Constructor ===========================================================#
    def __init__(self)->None:
        self.elements:List[BufferElement] = []

    ## Properties ============================================================#
    @property
    def elementCount(self)->int:
        """Number of buffered elements."""
        return len(self.elements)

    ## Special Methods =======================================================#
    def __len__(self)->int:
        return len(self.elements)

    def __iter__(self):
        return iter(self.elements)

    def __repr__(self)->str:
        return f"MsgBuffer(n={self.elementCount}, times={self.transmitTimes()})"

    ## Methods ===============================================================#
    def pushTop(self, element:BufferElement)->None:
        """Insert element at the head of the buffer."""
        self._checkElement(element)
        self.elements.insert(0, element)

    #--------------------------------------------------------------------------
    def pushBack(self, element:BufferElement)->None:
        """Append element at the tail of the buffer."""
        self._checkElement(element)
        self.elements.append(element)

    #--------------------------------------------------------------------------
    def popTop(self)->Optional[BufferElement]:
        """
        Remove and return the head element.

        Returns
        -------
        element : BufferElement or None
            Former head element, or None if the buffer was empty.

        Notes
        -----
        Popping an empty buffer happens at stream boundaries and is not an
        error: a warning is logged and nothing else happens.
        """

        if not (self.elements):
            log.warning('popTop called on empty buffer')
            return None
        return self.elements.pop(0)

    #--------------------------------------------------------------------------
    def getTop(self)->BufferElement:
        """
        Return the head element without removing it.

        Raises
        ------
        EmptyBufferError
            If the buffer holds no elements.
        """

        if not (self.elements):
            raise EmptyBufferError('getTop called on empty buffer')
        return self.elements[0]

    #--------------------------------------------------------------------------
    def clear(self)->None:
        """Remove all elements."""
        self.elements.clear()

    #--------------------------------------------------------------------------
    def sortBuffer(self)->None:
        """Sort elements by ascending transmitTime (stable)."""
        self.elements.sort(key=lambda e: e.transmitTime)

    #--------------------------------------------------------------------------
    def findKey(self, key:float)->Optional[int]:
        """Return index of first element with transmitTime == key, or None."""
        for i, element in enumerate(self.elements):
            if (element.transmitTime == key):
                return i
        return None

    #--------------------------------------------------------------------------
    def removeAt(self, index:int)->BufferElement:
        """Remove and return the element at index."""
        return self.elements.pop(index)

    #--------------------------------------------------------------------------
    def transmitTimes(self)->NPFltArr:
        """Return transmit times of all elements in buffer order."""
        return np.array([e.transmitTime for e in self.elements],
                        dtype=np.float64)

    ## Helper Methods ========================================================#
    @staticmethod
    def _checkElement(element:Any)->None:
        if not isinstance(element, BufferElement):
            raise InvalidTypeError(
                'MsgBuffer only stores BufferElement objects, '
                f'got {type(element).__name__}')

###############################################################################

@lru_cache(maxsize=None)
def getMsgStruct()->cst.Struct:
    """
    Return binary message structure for serialization/parsing.

    Returns
    -------
    cst.Struct
        Construct library Struct object defining the message format. Use
        .build(dict) to serialize and .parse(bytes) to deserialize.

    Notes
    -----
    .. code-block:: none

        Field          Type          Bytes
        -------------  ------------  ---------
        type           Const 'NCSM'  4
        sampling_ts    Float64l      8
        last_tx_ts     Float64l[2]   16
        seq            Int32ul       4
        node_id        Int16ul       2
        num_data       Int16ul       2
        data           Float64l[n]   8*n

    Total size is 36 + 8*n bytes for a payload of n values.
    """

    fltType = cst.Float64l                  # double precision
    seqType = cst.Int32ul
    idType = cst.Int16ul

    return cst.Struct(
        "type"          / cst.Const(MSG_FLAG),
        "sampling_ts"   / fltType,
        "last_tx_ts"    / fltType[2],
        "seq"           / seqType,
        "node_id"       / idType,
        "num_data"      / idType,
        "data"          / fltType[cst.this.num_data],
    )

###############################################################################

def encodeMsg(msg:NetworkMsg)->bytes:
    """Serialize message into bytes using getMsgStruct()."""

    return getMsgStruct().build(dict(
        sampling_ts=msg.samplingTimestamp,
        last_tx_ts=list(msg.lastTransmitTimestamps),
        seq=msg.sequenceNumber,
        node_id=msg.originNodeId,
        num_data=msg.payload.size,
        data=msg.payload.tolist(),
    ))

###############################################################################

def decodeMsg(data:Union[bytes, bytearray])->NetworkMsg:
    """
    Parse bytes into a message.

    Raises
    ------
    construct.ConstructError
        If the bytes do not follow the message structure.
    """

    parsed = getMsgStruct().parse(bytes(data))
    return NetworkMsg(samplingTimestamp=parsed.sampling_ts,
                      lastTransmitTimestamps=tuple(parsed.last_tx_ts),
                      payload=np.array(parsed.data, dtype=np.float64),
                      sequenceNumber=parsed.seq,
                      originNodeId=parsed.node_id)

###############################################################################

def makeMsg(samplingTimestamp:float,
            payload:Union[Sequence[float], NPFltArr, float],
            sequenceNumber:int,
            originNodeId:int,
            lastTransmitTimestamp:Optional[float]=None,
            )->NetworkMsg:
    """
    Build a fresh message whose transmit history starts at sampling time.

    Parameters
    ----------
    samplingTimestamp : float
        Sampling time of the payload.
    payload : array_like
        Data vector (a scalar is promoted to length 1).
    sequenceNumber : int
        Sequence number of the message.
    originNodeId : int
        Id of the creating node.
    lastTransmitTimestamp : float, optional
        Initial transmit time. Defaults to samplingTimestamp.
    """

    if (lastTransmitTimestamp is None):
        lastTransmitTimestamp = samplingTimestamp
    return NetworkMsg(samplingTimestamp, lastTransmitTimestamp,
                      np.atleast_1d(payload), sequenceNumber, originNodeId)

###############################################################################
