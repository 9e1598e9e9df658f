"""
Topology wiring of a networked control system.

NcsStructure ties a plant model, network effect tables, strategy parameters
and a set of nodes to one SimKernel. Subclasses describe a concrete loop by
overriding createNodes(); the base class wires the minimal sensor -> controller
-> actuator loop.


Classes
-------
NcsStructure
    Node registry, configuration, logging setup and run control.


Functions
---------
generateDataLoss(maxConsecutiveLoss, n, rng, lossProbability)
    Random loss mask with a bounded number of consecutive losses.


Notes
-----
**Node Registry:**

Nodes are held in an id-indexed dictionary (nodes) with a name index on top
(nodeMap: name -> id). Node ids are the integer addresses used by the kernel
for message delivery; names are only for lookup by the user.

**Logging Settings:**

The logging and netLogging attributes accept 'all', 'none'/'off',
'noout'/'quiet'/'noconsole'/'onlyfile' and 'nofile'/'onlyout'/'onlyconsole'.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional, Union
from numpy.typing import NDArray
import datetime
import os
import time
import numpy as np
from ncsnet import logger
from ncsnet import network as net
from ncsnet.errors import ConfigurationError
from ncsnet.kernel import SimKernel
from ncsnet.nodes import (ActuatorNode, ControllerNode, NetworkNode,
                          ObserverNode, SensorNode)
from ncsnet.plant import NcsPlant

#-----------------------------------------------------------------------------#

# Type Aliases
NPFltArr = NDArray[np.float64]

###############################################################################

def generateDataLoss(maxConsecutiveLoss:int,
                     n:int,
                     rng:Optional[np.random.Generator]=None,
                     lossProbability:float=0.5,
                     )->NPFltArr:
    """
    Generate a random loss mask with bounded consecutive losses.

    Parameters
    ----------
    maxConsecutiveLoss : int
        Longest allowed run of lost packets.
    n : int
        Mask length (one entry per sequence number).
    rng : numpy.random.Generator, optional
        Random number generator. A fresh default_rng() if None.
    lossProbability : float, default=0.5
        Probability that a packet is lost while the bound allows it.

    Returns
    -------
    ndarray, shape (n,)
        1 for delivered, 0 for lost.

    Notes
    -----
    Once maxConsecutiveLoss losses follow each other, the next packet is forced
    to be delivered. maxConsecutiveLoss=0 gives a mask of ones.
    """

    if (rng is None):
        rng = np.random.default_rng()
    mask = np.ones(int(n))
    run = 0
    draws = rng.random(int(n))
    for i in range(int(n)):
        if ((run < maxConsecutiveLoss) and (draws[i] < lossProbability)):
            mask[i] = 0.0
            run += 1
        else:
            run = 0
    return mask

###############################################################################

class NcsStructure:
    """
    Networked control system: plant, network effects, nodes and kernel.

    Parameters
    ----------
    plant : NcsPlant
        Discrete plant model.
    name : str, default='NCS'
        Structure name, used for log file names.
    simTime : float, optional
        Simulated time (s). Defaults to 5000 sampling periods.
    networkEffectsData : dict, optional
        Per-sequence tables (delays, loss masks) keyed by name.
    controlParams : dict, optional
        Controller strategy parameters.
    observerParams : dict, optional
        Observer strategy parameters.
    logging : str, default='all'
        Main logger configuration.
    netLogging : str, default='all'
        Network logger configuration.
    **kwargs
        Additional attributes to set on the structure.

    Attributes
    ----------
    kernel : SimKernel
        Event kernel of this structure.
    nodes : dict
        Registered nodes {nodeId: node}.
    nodeMap : dict
        Name index {name: nodeId}.
    outDir : str
        Directory of log files.

    Raises
    ------
    ConfigurationError
        If plant is not an NcsPlant.
    """

    ## Constructor ===========================================================#
    def __init__(self,
                 plant:NcsPlant,
                 name:str = 'NCS',
                 simTime:Optional[float] = None,
                 networkEffectsData:Optional[Dict[str, Any]] = None,
                 controlParams:Optional[Dict[str, Any]] = None,
                 observerParams:Optional[Dict[str, Any]] = None,
                 logging:str = 'all',
                 netLogging:str = 'all',
                 **kwargs,
                 )->None:

        if not isinstance(plant, NcsPlant):
            raise ConfigurationError('plant must be an instance of NcsPlant')

        ## Configuration
        self.plant = plant
        self.name = name
        if (simTime is None):
            simTime = 5000 * plant.sampleTime
        self.simTime = float(simTime)
        self.networkEffectsData = ({} if networkEffectsData is None
                                   else networkEffectsData)
        self.controlParams = {} if controlParams is None else controlParams
        self.observerParams = {} if observerParams is None else observerParams
        self.outDir = os.path.join('outputs', name)
        self.seed = None                            # rng seed for tables

        ## User Keyword Attributes
        for key,value in kwargs.items():
            if key not in {                         # computed attributes
                'kernel',
                'nodes',
                'nodeMap',
            }:
                setattr(self, key, value)

        ## Objects
        self.kernel = SimKernel()
        self.nodes:Dict[int, NetworkNode] = {}
        self.nodeMap:Dict[str, int] = {}
        self.rng = np.random.default_rng(self.seed)
        self.runTime = 0.0

        ## Logging
        self.log = None                             # main logger
        self.logging = logging                      # logging setting
        self.netLogging = netLogging                # network logging setting

    ## Special Methods =======================================================#
    def __repr__(self)->str:
        return (f"{self.__class__.__name__}("
                f"name={self.name!r}, "
                f"simTime={self.simTime}, "
                f"nodes={self.nodeMap})")

    def __str__(self)->str:
        lines = [f"{self.name}: {self.plant}",
                 f" simTime: {self.simTime:.4f}s"]
        for key, nodeId in sorted(self.nodeMap.items(), key=lambda kv: kv[1]):
            node = self.nodes[nodeId]
            lines.append(f" [{nodeId:03d}] {key:<24} -> {node.nextNode}")
        return "\n".join(lines)

    ## Properties ============================================================#
    @property
    def logFile(self)->str:
        """Main log file path."""
        return os.path.join(self.outDir, f"{self.name}.log")

    @property
    def netFile(self)->str:
        """Network log file path."""
        return os.path.join(self.outDir, f"{self.name}_net.log")

    #--------------------------------------------------------------------------
    @property
    def logging(self)->str:
        """Get main logger configuration."""
        return self._logging

    @logging.setter
    def logging(self, logging:str)->None:
        """
        Set main logger configuration.

        Parameters
        ----------
        logging : str
            'all', 'none', 'noout', 'nofile', 'quiet', 'onlyfile',
            'onlyconsole'.
        """

        def setNoneLog()->None:
            """Set the main logger to no logging"""
            self.log = logger.noneLog(logger.MAIN_LOG)

        def setNoConsoleLog()->None:
            """Set the main logger to no console logging"""
            if (logger.log is not None):
                logger.deepRemoveHandler(logger.consoleHandler)
                logger.removeLog(logger.MAIN_LOG)
            self._makeOutDir()
            self.log = logger.setupMain(fileName=self.logFile,outFormat=None)

        def setNoFileLog()->None:
            """Set the main logger to no file logging"""
            if (logger.log is not None):
                logger.deepRemoveHandler(logger.fileHandler)
                logger.removeLog(logger.MAIN_LOG)
            self.log = logger.setupMain(fileFormat=None)

        def setDefaultLog()->None:
            """Set the main logger to default logging to console and file"""
            if (logger.log is not None):
                logger.removeLog(logger.MAIN_LOG)
            self._makeOutDir()
            self.log = logger.setupMain(fileName=self.logFile)

        logSettings = {
            # No logging
            'NONE': setNoneLog,
            'OFF': setNoneLog,
            # No console logging
            'NOOUT': setNoConsoleLog,
            'QUIET': setNoConsoleLog,
            'NOCONSOLE': setNoConsoleLog,
            'ONLYFILE': setNoConsoleLog,
            # No file logging
            'NOFILE': setNoFileLog,
            'ONLYOUT': setNoFileLog,
            'ONLYCONSOLE': setNoFileLog,
        }

        configLog = logSettings.get(logging.upper(), setDefaultLog)
        configLog()
        self._logging = logging

    #--------------------------------------------------------------------------
    @property
    def netLogging(self)->str:
        """Get network logger configuration."""
        return self._netLogging

    @netLogging.setter
    def netLogging(self, netLogging:str)->None:
        """
        Set network logger configuration.

        Parameters
        ----------
        netLogging : str
            'all', 'none', 'noout', 'nofile', 'quiet', 'onlyfile',
            'onlyconsole'.
        """

        name = net.log.name
        logger.removeHandlers(name)

        def setNoneNet()->None:
            """Set the network logger to no logging"""
            net.log = logger.setupNet(name=name, file=False, out=False)
            net.log.setLevel(logger.WARNING)

        def setNoConsoleNet()->None:
            """Set the network logger to no console logging"""
            self._makeOutDir()
            net.log = logger.setupNet(name=name, fileName=self.netFile,
                                      out=False)

        def setNoFileNet()->None:
            """Set the network logger to no unique file logging"""
            net.log = logger.setupNet(name=name, file=False)

        def setDefaultNet()->None:
            """Set the network logger to default logging"""
            self._makeOutDir()
            net.log = logger.setupNet(name=name, fileName=self.netFile)

        netSettings = {
            # No console or unique file logging
            'NONE': setNoneNet,
            'OFF': setNoneNet,
            # No console logging
            'NOOUT': setNoConsoleNet,
            'QUIET': setNoConsoleNet,
            'NOCONSOLE': setNoConsoleNet,
            'ONLYFILE': setNoConsoleNet,
            # No unique file logging
            'NOFILE': setNoFileNet,
            'ONLYOUT': setNoFileNet,
            'ONLYCONSOLE': setNoFileNet,
        }

        configNetLog = netSettings.get(netLogging.upper(), setDefaultNet)
        configNetLog()
        self._netLogging = netLogging

    #--------------------------------------------------------------------------
    @property
    def allNodes(self)->List[NetworkNode]:
        """All registered nodes in id order."""
        return [self.nodes[k] for k in sorted(self.nodes)]

    #--------------------------------------------------------------------------
    @property
    def results(self)->Dict[str, Dict[str, NPFltArr]]:
        """
        Histories of every controller and observer node.

        Returns
        -------
        dict
            {name: {'uk' or 'xhat': values, 'time': send times}} for every
            ControllerNode ('uk') and ObserverNode ('xhat').
        """

        results = {}
        for key, nodeId in self.nodeMap.items():
            node = self.nodes[nodeId]
            if isinstance(node, ControllerNode):
                results[key] = {
                    'uk': node.controlSignalHistory.data.copy(),
                    'time': node.sendTimeHistory.data[:, 0].copy(),
                }
            elif isinstance(node, ObserverNode):
                results[key] = {
                    'xhat': node.estimatesHistory.data.copy(),
                    'time': node.sendTimeHistory.data[:, 0].copy(),
                }
        return results

    ## Methods ===============================================================#
    def addNode(self, key:str, node:NetworkNode)->NetworkNode:
        """
        Register node under name key and attach it to the kernel.

        Raises
        ------
        ConfigurationError
            If key or the node id is already registered.
        """

        if (key in self.nodeMap):
            raise ConfigurationError(f"node name '{key}' already registered")
        if (node.nodeId in self.nodes):
            raise ConfigurationError(
                f"node id {node.nodeId} of '{key}' already used by "
                f"'{self._nameOf(node.nodeId)}'")
        node.attach(self.kernel)
        self.nodes[node.nodeId] = node
        self.nodeMap[key] = node.nodeId
        return node

    #--------------------------------------------------------------------------
    def getNode(self, key:Union[str, int])->NetworkNode:
        """Return node by name or id (ConfigurationError if unknown)."""
        try:
            if isinstance(key, str):
                return self.nodes[self.nodeMap[key]]
            return self.nodes[int(key)]
        except KeyError:
            raise ConfigurationError(f'unknown node {key!r}') from None

    #--------------------------------------------------------------------------
    def getMaxNodeNr(self)->int:
        """Largest registered node id (0 if none)."""
        return max(self.nodes, default=0)

    #--------------------------------------------------------------------------
    def createNodes(self)->None:
        """
        Create and register the nodes of the loop.

        Default topology: SensorNode -> ControllerNode (Ramp) -> ActuatorNode,
        sampled at the plant sampling time. Override to describe other loops.
        """

        sensorNodeNr = self.getMaxNodeNr() + 1
        controllerNodeNr = sensorNodeNr + 1
        actuatorNodeNr = sensorNodeNr + 2

        self.addNode("SensorNode", SensorNode(
            self.plant.stateSize, controllerNodeNr, sensorNodeNr,
            self.plant.sampleTime, endTime=self.simTime))
        self.addNode("ControllerNode", ControllerNode(
            self.plant.inputSize, actuatorNodeNr, controllerNodeNr, 'Ramp',
            self.controlParams.get('Ramp'), self.plant))
        self.addNode("ActuatorNode", ActuatorNode(
            self.plant.inputSize, actuatorNodeNr))

    #--------------------------------------------------------------------------
    def init(self)->None:
        """Reset kernel and initialize every node."""
        self.kernel.reset()
        for node in self.allNodes:
            node.init()

    #--------------------------------------------------------------------------
    def run(self)->Dict[str, Dict[str, NPFltArr]]:
        """
        Run the simulation for simTime and return results.

        Nodes are created with createNodes() if none are registered yet.
        """

        if not (self.nodes):
            self.createNodes()
        self.init()
        self.log.info('%s', self)
        start = time.time()
        self.kernel.run(self.simTime)
        self.runTime = time.time() - start
        line = '*' * 64
        self.log.info(line)
        self.log.info('Run Time: (Real) %s, (Simulated) %.4fs',
                      datetime.timedelta(seconds=round(self.runTime)),
                      self.simTime)
        self.log.info(self.kernel.getStatsReport())
        self.log.info(line)
        return self.results

    ## Helper Methods ========================================================#
    def _makeOutDir(self)->None:
        os.makedirs(self.outDir, exist_ok=True)

    def _nameOf(self, nodeId:int)->Optional[str]:
        for key, value in self.nodeMap.items():
            if (value == nodeId):
                return key
        return None

###############################################################################
