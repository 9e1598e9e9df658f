"""
Discrete plant description handed to control and observer strategies.

NcsPlant holds an already discretized state-space model. Continuous-time
modelling and discretization are done outside ncsnet; strategies only read
the matrices and sizes stored here.
"""

from typing import Optional, Union
from numpy.typing import NDArray, ArrayLike
import numpy as np
from ncsnet import logger
from ncsnet.errors import DimensionMismatchError

#-----------------------------------------------------------------------------#

# Type Aliases
NPFltArr = NDArray[np.float64]

# Global Variables
log = logger.addLog('plant')

###############################################################################

class NcsPlant:
    """
    Discrete state-space plant of a networked control loop.

    x(k+1) = Ad x(k) + Bd u(k),  y(k) = Cd x(k) + Dd u(k)


    Parameters
    ----------
    Ad : array_like, shape (n, n)
        Discrete system matrix.
    Bd : array_like, shape (n, m)
        Discrete input matrix. A 1-D array is taken as a single column.
    Cd : array_like, shape (p, n), optional
        Output matrix. Defaults to identity (full state measured).
    Dd : array_like, shape (p, m), optional
        Feedthrough matrix. Defaults to zeros.
    sampleTime : float, default=0.01
        Sampling period in seconds.
    delaySteps : int, default=1
        Number of sampling periods of known transport delay compensated by
        lifted control strategies.
    controlSaturationLimits : array_like, optional
        None for no limits, shape (m,) or (m, 1) for symmetric limits, or
        shape (m, 2) for [lower, upper] limits.


    Attributes
    ----------
    stateSize : int
        Number of states n.
    inputSize : int
        Number of inputs m.
    outputSize : int
        Number of outputs p.
    saturationLimits : ndarray, shape (m, 2)
        Processed lower and upper limits.


    Raises
    ------
    DimensionMismatchError
        If matrix shapes are inconsistent, or the saturation limits have an
        unsupported shape.
    """

    ## Constructor ===========================================================#
    def __init__(self,
                 Ad:ArrayLike,
                 Bd:ArrayLike,
                 Cd:Optional[ArrayLike]=None,
                 Dd:Optional[ArrayLike]=None,
                 sampleTime:float=0.01,
                 delaySteps:int=1,
                 controlSaturationLimits:Optional[ArrayLike]=None,
                 )->None:

        self.Ad = np.atleast_2d(np.asarray(Ad, dtype=np.float64))
        Bd = np.asarray(Bd, dtype=np.float64)
        self.Bd = Bd.reshape(-1, 1) if (Bd.ndim < 2) else Bd

        n = self.Ad.shape[0]
        if (self.Ad.shape != (n, n)):
            raise DimensionMismatchError(
                f'Ad must be square, got {self.Ad.shape}')
        if (self.Bd.shape[0] != n):
            raise DimensionMismatchError(
                f'Bd must have {n} rows, got {self.Bd.shape}')
        m = self.Bd.shape[1]

        if (Cd is None):
            self.Cd = np.eye(n)
        else:
            self.Cd = np.atleast_2d(np.asarray(Cd, dtype=np.float64))
        if (self.Cd.shape[1] != n):
            raise DimensionMismatchError(
                f'Cd must have {n} columns, got {self.Cd.shape}')
        p = self.Cd.shape[0]

        if (Dd is None):
            self.Dd = np.zeros((p, m))
        else:
            self.Dd = np.atleast_2d(np.asarray(Dd, dtype=np.float64))
        if (self.Dd.shape != (p, m)):
            raise DimensionMismatchError(
                f'Dd must be {p}x{m}, got {self.Dd.shape}')

        if (sampleTime <= 0):
            raise DimensionMismatchError(
                f'sampleTime must be positive, got {sampleTime}')
        if (int(delaySteps) < 0):
            raise DimensionMismatchError(
                f'delaySteps must be non-negative, got {delaySteps}')

        self.sampleTime = float(sampleTime)
        self.delaySteps = int(delaySteps)
        self.stateSize = n
        self.inputSize = m
        self.outputSize = p
        self.saturationLimits = self._processSaturation(
            controlSaturationLimits)

        log.debug('Plant: n=%d m=%d p=%d Ts=%.4fs delaySteps=%d',
                  n, m, p, self.sampleTime, self.delaySteps)

    ## Special Methods =======================================================#
    def __repr__(self)->str:
        return (f"{self.__class__.__name__}("
                f"stateSize={self.stateSize}, "
                f"inputSize={self.inputSize}, "
                f"outputSize={self.outputSize}, "
                f"sampleTime={self.sampleTime}, "
                f"delaySteps={self.delaySteps})")

    ## Properties ============================================================#
    @property
    def liftedStateSize(self)->int:
        """Size of [x; u(k-1); ...; u(k-delaySteps)]."""
        return self.stateSize + self.delaySteps * self.inputSize

    ## Methods ===============================================================#
    def saturate(self, u:ArrayLike)->NPFltArr:
        """Clip control vector to the saturation limits."""
        u = np.asarray(u, dtype=np.float64).reshape(-1)
        return np.clip(u, self.saturationLimits[:, 0],
                       self.saturationLimits[:, 1])

    #--------------------------------------------------------------------------
    def step(self, x:ArrayLike, u:ArrayLike)->NPFltArr:
        """Return next state Ad x + Bd u."""
        x = np.asarray(x, dtype=np.float64).reshape(-1)
        u = np.asarray(u, dtype=np.float64).reshape(-1)
        return self.Ad @ x + self.Bd @ u

    #--------------------------------------------------------------------------
    def output(self, x:ArrayLike, u:Union[ArrayLike, None]=None)->NPFltArr:
        """Return output Cd x + Dd u."""
        x = np.asarray(x, dtype=np.float64).reshape(-1)
        y = self.Cd @ x
        if (u is not None):
            y = y + self.Dd @ np.asarray(u, dtype=np.float64).reshape(-1)
        return y

    ## Helper Methods ========================================================#
    def _processSaturation(self, limits:Optional[ArrayLike])->NPFltArr:
        m = self.inputSize
        if (limits is None):
            return np.tile([-np.inf, np.inf], (m, 1))
        limits = np.asarray(limits, dtype=np.float64)
        if (limits.ndim == 1):
            limits = limits.reshape(-1, 1)
        if (limits.shape == (m, 1)):
            upper = np.abs(limits[:, 0])
            return np.column_stack((-upper, upper))
        if (limits.shape == (m, 2)):
            return limits.copy()
        raise DimensionMismatchError(
            f'controlSaturationLimits must be {m}x1 or {m}x2, '
            f'got {limits.shape}')

###############################################################################
