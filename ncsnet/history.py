"""
Append-only history logs for node and kernel records.

Histories (control signals, estimates, send times, analog outputs) grow by one
row per event. HistoryLog preallocates a numpy array and doubles its capacity
when full, so appending stays amortized constant time.


Classes
-------
HistoryLog
    Growing 2-D float log with fixed row width.


Functions
---------
resizeLog(logArray, logSize, newCap)
    Copy the valid rows of a log into a new array of larger capacity.
"""

from typing import Optional, Union, Sequence
from numpy.typing import NDArray
import numpy as np
from ncsnet import logger

#-----------------------------------------------------------------------------#

# Type Aliases
NPFltArr = NDArray[np.float64]

# Global Variables
log = logger.addLog('hist')

###############################################################################

def resizeLog(logArray:NPFltArr, logSize:int, newCap:int)->NPFltArr:
    """
    Expand log array to new capacity.

    Parameters
    ----------
    logArray : ndarray, shape (cap, width)
        Current log array.
    logSize : int
        Number of valid rows in log.
    newCap : int
        Capacity of the resized log.

    Returns
    -------
    ndarray
        Log with capacity=newCap; rows past logSize are NaN padded.
    """

    newLog = np.full((newCap, logArray.shape[1]), np.nan)
    newLog[:logSize] = logArray[:logSize]
    return newLog

###############################################################################

class HistoryLog:
    """
    Append-only float log with amortized doubling capacity.

    Parameters
    ----------
    width : int, optional
        Number of values per row. If None, taken from the first append.
    name : str, default='history'
        Label used in log messages.
    capacity : int, default=64
        Initial row capacity.

    Attributes
    ----------
    data : ndarray, shape (n, width)
        Valid rows (view, not a copy).
    """

    ## Constructor ===========================================================#
    def __init__(self,
                 width:Optional[int]=None,
                 name:str='history',
                 capacity:int=64,
                 )->None:
        self.name = name
        self._width = width
        self._logCap = max(int(capacity), 1)
        self._logSize = 0
        self._log = None
        if (width is not None):
            self._log = np.full((self._logCap, width), np.nan)

    ## Properties ============================================================#
    @property
    def data(self)->NPFltArr:
        """Valid rows of the log."""
        if (self._log is None):
            return np.empty((0, self._width or 0))
        return self._log[:self._logSize]

    @property
    def width(self)->Optional[int]:
        return self._width

    ## Special Methods =======================================================#
    def __len__(self)->int:
        return self._logSize

    def __getitem__(self, index):
        return self.data[index]

    ## Methods ===============================================================#
    def append(self, values:Union[float, Sequence[float], NPFltArr])->None:
        """
        Append one row.

        Rows shorter than the log width are NaN padded. Longer rows are
        truncated to the width with a logged warning.
        """

        row = np.atleast_1d(np.asarray(values, dtype=np.float64)).reshape(-1)
        if (self._log is None):
            self._width = row.size
            self._log = np.full((self._logCap, self._width), np.nan)
        if (self._logSize >= self._logCap):
            self._logCap *= 2
            self._log = resizeLog(self._log, self._logSize, self._logCap)
            log.debug('Resized %s log to %d', self.name, self._logCap)
        if (row.size > self._width):
            log.warning('%s log holds %d values per row, dropping %d',
                        self.name, self._width, row.size - self._width)
        n = min(row.size, self._width)
        self._log[self._logSize, :n] = row[:n]
        self._logSize += 1

    #--------------------------------------------------------------------------
    def last(self)->NPFltArr:
        """Return most recent row (IndexError if empty)."""
        if (self._logSize == 0):
            raise IndexError(f'{self.name} log is empty')
        return self._log[self._logSize - 1]

    #--------------------------------------------------------------------------
    def clear(self)->None:
        """Drop all rows, keeping current capacity."""
        self._logSize = 0
        if (self._log is not None):
            self._log[:] = np.nan

###############################################################################
