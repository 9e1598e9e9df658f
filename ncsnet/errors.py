"""
Exception types raised by the network and strategy layers.

Fatal contract violations are raised as exceptions and propagate out of the
event kernel. Recoverable conditions (popping an empty buffer, cancelling a
send job that already ran) are not represented here; they are logged as
warnings where they occur.


Classes
-------
NcsError
    Base class of every error raised by ncsnet.
InvalidTypeError
    Object of the wrong type handed to a buffer or node.
EmptyBufferError
    Head of an empty buffer requested.
DimensionMismatchError
    Gain matrix or plant model of the wrong shape.
CausalityViolationError
    Transmit time computed earlier than the current virtual time.
UnknownStrategyError
    Strategy name not found in the registry.
ConfigurationError
    Invalid node, topology or policy configuration.
"""

###############################################################################

class NcsError(Exception):
    """Base class of every error raised by ncsnet."""

###############################################################################

class InvalidTypeError(NcsError, TypeError):
    """Object of the wrong type handed to a buffer or node."""

###############################################################################

class EmptyBufferError(NcsError, IndexError):
    """Head element requested from an empty MsgBuffer."""

###############################################################################

class DimensionMismatchError(NcsError, ValueError):
    """Matrix or vector with a shape inconsistent with the plant model."""

###############################################################################

class CausalityViolationError(NcsError, RuntimeError):
    """
    Transmit time computed earlier than the current virtual time.

    Raised by a delay node when its policy asks for a message to be sent into
    the past. The run is aborted rather than clamped, since the cause is a
    faulty policy or delay table.

    Attributes
    ----------
    currentTime : float
        Virtual time at which the violation was detected.
    transmitTime : float
        Offending transmit time.
    """

    def __init__(self, message:str, currentTime:float=None,
                 transmitTime:float=None)->None:
        super().__init__(message)
        self.currentTime = currentTime
        self.transmitTime = transmitTime

###############################################################################

class UnknownStrategyError(NcsError, KeyError):
    """Strategy name not found in the strategy registry."""

    def __str__(self)->str:
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else ''

###############################################################################

class ConfigurationError(NcsError, ValueError):
    """Invalid node, topology or policy configuration."""

###############################################################################
