"""
Visualization functions for networked control simulation data.

Plots the analog outputs recorded by the SimKernel and the histories kept by
controller and observer nodes against virtual time. Signals of a sampled loop
are piecewise constant, so step plots ('post') are used throughout.


Functions
---------
plotAnalogOutputs(kernel, nodeIds, figNo)
    Plot recorded analog output channels of nodes versus time.
plotControlHistory(controller, figNo)
    Plot control signals of a ControllerNode versus time.
plotEstimates(observer, figNo, states)
    Plot state estimates of an ObserverNode versus time.


Utility Functions
-----------------
cm2inch(value)
    Convert centimeters to inches for figure sizing.


Notes
-----
Default plot parameters (figure size, DPI, legend size) are defined as
module-level globals and can be modified before calling plot functions.
"""

from typing import Iterable, List, Optional
from numpy.typing import NDArray
import math
import matplotlib.pyplot as plt
import numpy as np
from ncsnet import logger
from ncsnet.kernel import SimKernel
from ncsnet.nodes import ControllerNode, ObserverNode

#-----------------------------------------------------------------------------#

# Type Aliases
NPFltArr = NDArray[np.float64]

# Global Variables
log = logger.addLog('pltTS')

# Plot Parameters
legendSize = 10         # legend size
figSize1 = [25, 13]     # figure1 size in cm
figSize2 = [25, 13]     # figure2 size in cm
dpiValue = 150          # figure dpi value

###############################################################################

def cm2inch(value:float)->float:
    """Convert centimeters to inches."""
    return value / 2.54

###############################################################################

def _stepPlot(ax, t:NPFltArr, data:NPFltArr, labels:List[str])->None:
    for i in range(data.shape[1]):
        ax.step(t, data[:, i], where='post', label=labels[i])
    ax.set_xlabel("Time (s)", fontsize=12)
    ax.legend(fontsize=legendSize)
    ax.grid()

###############################################################################

def plotAnalogOutputs(kernel:SimKernel,
                      nodeIds:Optional[Iterable[int]]=None,
                      figNo:int=1):
    """
    Plot recorded analog outputs of nodes versus virtual time.

    Parameters
    ----------
    kernel : SimKernel
        Kernel holding the analog records.
    nodeIds : iterable of int, optional
        Nodes to plot. All recorded nodes by default.
    figNo : int, default=1
        Matplotlib figure number.

    Returns
    -------
    matplotlib.figure.Figure
        Figure with one subplot per node.
    """

    if (nodeIds is None):
        nodeIds = sorted(kernel.analogLogs)
    nodeIds = [n for n in nodeIds if n in kernel.analogLogs]

    fig = plt.figure(figNo,
                     figsize=(cm2inch(figSize1[0]), cm2inch(figSize1[1])),
                     dpi=dpiValue)
    if not (nodeIds):
        log.warning('No analog outputs recorded')
        return fig

    col = 2 if (len(nodeIds) > 1) else 1
    row = int(math.ceil(len(nodeIds) / col))
    for i, nodeId in enumerate(nodeIds):
        data = kernel.analogLogs[nodeId].data
        ax = fig.add_subplot(row, col, i + 1)
        labels = [f"ch {c+1}" for c in range(data.shape[1] - 1)]
        _stepPlot(ax, data[:, 0], data[:, 1:], labels)
        ax.set_title(f"Node {nodeId:03d}")
    fig.tight_layout()
    return fig

###############################################################################

def plotControlHistory(controller:ControllerNode, figNo:int=2):
    """
    Plot control signals of a controller node versus virtual time.

    Parameters
    ----------
    controller : ControllerNode
        Node whose controlSignalHistory is plotted.
    figNo : int, default=2
        Matplotlib figure number.

    Returns
    -------
    matplotlib.figure.Figure
    """

    fig = plt.figure(figNo,
                     figsize=(cm2inch(figSize2[0]), cm2inch(figSize2[1])),
                     dpi=dpiValue)
    fig.suptitle(f"Controller {controller.nodeId:03d} "
                 f"({controller.controlStrategy.__class__.__name__})")
    ax = fig.add_subplot(1, 1, 1)
    u = controller.controlSignalHistory.data
    t = controller.sendTimeHistory.data[:, 0]
    _stepPlot(ax, t, u, [f"u{i+1}" for i in range(u.shape[1])])
    return fig

###############################################################################

def plotEstimates(observer:ObserverNode,
                  figNo:int=3,
                  states:Optional[NPFltArr]=None):
    """
    Plot state estimates of an observer node versus virtual time.

    Parameters
    ----------
    observer : ObserverNode
        Node whose estimatesHistory is plotted.
    figNo : int, default=3
        Matplotlib figure number.
    states : ndarray, shape (N, 1+n), optional
        True states [time, x...] drawn for comparison.

    Returns
    -------
    matplotlib.figure.Figure
        Figure with one subplot per state.
    """

    xhat = observer.estimatesHistory.data
    t = observer.sendTimeHistory.data[:, 0]
    n = xhat.shape[1]

    fig = plt.figure(figNo,
                     figsize=(cm2inch(figSize2[0]), cm2inch(figSize2[1])),
                     dpi=dpiValue)
    fig.suptitle(f"Observer {observer.nodeId:03d} "
                 f"({observer.observerStrategy.__class__.__name__})")
    col = 2 if (n > 1) else 1
    row = int(math.ceil(n / col))
    for i in range(n):
        ax = fig.add_subplot(row, col, i + 1)
        ax.step(t, xhat[:, i], where='post', label=f"x{i+1} estimate")
        if (states is not None):
            ax.plot(states[:, 0], states[:, i + 1], label=f"x{i+1}")
        ax.set_xlabel("Time (s)", fontsize=12)
        ax.legend(fontsize=legendSize)
        ax.grid()
    return fig

###############################################################################
