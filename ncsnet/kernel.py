"""
Deterministic discrete-event kernel for networked control simulations.

SimKernel owns the single virtual clock and the event queue. Nodes never call
each other directly: they schedule callbacks on the kernel and hand messages to
it with send(), which delivers them to the target node's receive() as a new
event. Events run one at a time to completion, so the tasks of a node never
interleave and no locking is needed.


Classes
-------
Job
    Handle of a scheduled callback, used for cancellation.
SimKernel
    Virtual clock, event queue, node registry and analog output recorder.


Notes
-----
**Event ordering:**

The queue is a binary heap of (time, jobId, job) tuples. jobId increases with
every scheduled callback, so events due at the same virtual time run in the
order they were scheduled.

**Cancellation:**

Cancelled jobs stay in the heap and are skipped when popped. Once more than
compactMin of them are queued and they make up over half of the heap, the heap
is rebuilt without them, so long runs with many preemptions keep the queue
bounded. Cancelling a job that already ran or was already cancelled is a
recoverable race and only logs a warning.

**Links:**

send() delivers at the current virtual time. All transport latency is modelled
by delay nodes placed in the topology.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, TYPE_CHECKING
from numpy.typing import NDArray
import heapq
import numpy as np
if (TYPE_CHECKING):
    from ncsnet.nodes import NetworkNode
    from ncsnet.messages import NetworkMsg
from ncsnet import logger
from ncsnet.errors import CausalityViolationError, ConfigurationError
from ncsnet.history import HistoryLog

#-----------------------------------------------------------------------------#

# Type Aliases
NPFltArr = NDArray[np.float64]

# Global Variables
log = logger.addLog('kernel')

# Tolerance for comparing virtual times (s)
TIME_TOL = 1e-9

# Node id meaning "no target"
NO_NODE = 0

###############################################################################

@dataclass
class Job:
    """
    Handle of a callback scheduled on the kernel.

    Attributes
    ----------
    jobId : int
        Unique, increasing job number (heap tie-breaker).
    time : float
        Virtual time at which the callback is due.
    callback : callable
        Function called when the job is dispatched.
    args : tuple
        Positional arguments passed to callback.
    cancelled : bool
        Set by SimKernel.cancelCallback().
    done : bool
        Set when the job has been dispatched.
    """

    __slots__ = ('jobId', 'time', 'callback', 'args', 'cancelled', 'done')

    jobId: int
    time: float
    callback: Callable[..., Any]
    args: Tuple[Any, ...]
    cancelled: bool
    done: bool

    @property
    def pending(self)->bool:
        """True while the job is neither cancelled nor dispatched."""
        return not (self.cancelled or self.done)

###############################################################################

class SimKernel:
    """
    Virtual clock and event dispatcher.

    Parameters
    ----------
    **kwargs : dict
        Overrides of the default attributes below.

    Attributes
    ----------
    time : float
        Current virtual time (s).
    nodes : dict
        Registered nodes {nodeId: node}.
    eventq : list
        Heap of (time, jobId, Job).
    analogLogs : dict
        Analog output records {nodeId: HistoryLog}, rows [time, values...].
    recordAnalog : bool, default=True
        Record analogOutput() calls.
    compactMin : int, default=64
        Cancelled jobs tolerated in the heap before it is compacted.
    stats : dict
        Counters of dispatched events, sent messages, bits and cancellations.

    Methods
    -------
    now()
        Current virtual time.
    register(node)
        Add a node to the registry.
    scheduleCallback(callback, time, *args)
        Schedule callback at virtual time.
    sleepUntil(callback, time)
        Suspend a task until time (callback resumes it).
    cancelCallback(job)
        Best-effort cancellation of a scheduled job.
    send(targetNodeId, message, sizeBits)
        Deliver message to a node at the current time.
    analogOutput(nodeId, values)
        Record analog values of a node.
    run(until)
        Dispatch events up to and including time until.
    reset()
        Clear clock, queue, records and statistics.
    getStatsReport()
        Formatted kernel statistics.
    """

    ## Constructor ===========================================================#
    def __init__(self, **kwargs)->None:

        # Configurations
        self.recordAnalog = True        # Keep analog output records
        self.compactMin = 64            # Dead heap entries before compaction
        self.__dict__.update(kwargs)

        # Data Structures
        self.nodes:Dict[int, NetworkNode] = {}
        self.eventq:List[Tuple[float, int, Job]] = []
        self.analogLogs:Dict[int, HistoryLog] = {}
        self.time = 0.0
        self.__jid = 0
        self.__nDead = 0                # Cancelled jobs still in heap

        self.stats = {
            'events': 0,                # Jobs dispatched
            'scheduled': 0,             # Jobs scheduled
            'msgSent': 0,               # Messages handed to send()
            'bitsSent': 0,              # Bits handed to send()
            'cancelled': 0,             # Jobs cancelled
            'cancelFailed': 0,          # Cancels on finished jobs
            'compactions': 0,           # Heap rebuilds dropping dead jobs
        }

    ## Special Methods =======================================================#
    def __repr__(self)->str:
        return (f"{self.__class__.__name__}("
                f"time={self.time:.6f}, "
                f"nodes={sorted(self.nodes)}, "
                f"queued={len(self.eventq)})")

    ## Methods ===============================================================#
    def now(self)->float:
        """Return current virtual time."""
        return self.time

    #--------------------------------------------------------------------------
    def register(self, node:NetworkNode)->None:
        """
        Add node to the registry under its nodeId.

        Raises
        ------
        ConfigurationError
            If the id is reserved (0) or already taken by another node.
        """

        nodeId = node.nodeId
        if (nodeId == NO_NODE):
            raise ConfigurationError('node id 0 is reserved for "no target"')
        if ((nodeId in self.nodes) and (self.nodes[nodeId] is not node)):
            raise ConfigurationError(
                f'node id {nodeId} already registered to '
                f'{self.nodes[nodeId].__class__.__name__}')
        self.nodes[nodeId] = node
        log.debug('Registered node %03d (%s)', nodeId,
                  node.__class__.__name__)

    #--------------------------------------------------------------------------
    def scheduleCallback(self,
                         callback:Callable[..., Any],
                         time:float,
                         *args:Any,
                         )->Job:
        """
        Schedule callback(*args) at virtual time.

        Raises
        ------
        CausalityViolationError
            If time lies before the current virtual time.
        """

        if (time < self.time - TIME_TOL):
            raise CausalityViolationError(
                f'cannot schedule at {time:.9f}s, current time is '
                f'{self.time:.9f}s', self.time, time)
        time = max(float(time), self.time)
        job = Job(self._nextJid(), time, callback, args, False, False)
        heapq.heappush(self.eventq, (job.time, job.jobId, job))
        self.stats['scheduled'] += 1
        return job

    #--------------------------------------------------------------------------
    def sleepUntil(self, callback:Callable[[], Any], time:float)->Job:
        """
        Suspend a task until time.

        The task continues in callback, which is dispatched at the wake time
        unless the returned job is cancelled first.
        """

        return self.scheduleCallback(callback, time)

    #--------------------------------------------------------------------------
    def cancelCallback(self, job:Optional[Job])->bool:
        """
        Cancel a scheduled job.

        Returns
        -------
        bool
            True if the job was pending and is now cancelled. False, with a
            logged warning, if it already ran or was already cancelled.
        """

        if ((job is None) or not (job.pending)):
            log.warning('Could not cancel job %s: not pending',
                        None if job is None else job.jobId)
            self.stats['cancelFailed'] += 1
            return False
        job.cancelled = True
        self.stats['cancelled'] += 1
        self.__nDead += 1
        if ((self.__nDead > self.compactMin) and
            (2 * self.__nDead > len(self.eventq))):
            self._compact()
        return True

    #--------------------------------------------------------------------------
    def send(self, targetNodeId:int, message:NetworkMsg, sizeBits:int)->None:
        """
        Deliver message to the target node at the current virtual time.

        Parameters
        ----------
        targetNodeId : int
            Receiving node id. 0 means no target and is ignored.
        message : NetworkMsg
            Message handed to the target's receive().
        sizeBits : int
            Message size, accounted in the statistics.

        Raises
        ------
        ConfigurationError
            If no node is registered under targetNodeId.
        """

        if (targetNodeId == NO_NODE):
            return
        try:
            target = self.nodes[targetNodeId]
        except KeyError:
            raise ConfigurationError(
                f'send to unknown node id {targetNodeId}') from None
        self.stats['msgSent'] += 1
        self.stats['bitsSent'] += int(sizeBits)
        self.scheduleCallback(target.receive, self.time, message)

    #--------------------------------------------------------------------------
    def analogOutput(self, nodeId:int, values:NPFltArr)->None:
        """Record analog output values of a node at the current time."""

        if not (self.recordAnalog):
            return
        values = np.atleast_1d(np.asarray(values, dtype=np.float64))
        if (nodeId not in self.analogLogs):
            self.analogLogs[nodeId] = HistoryLog(values.size + 1,
                                                 f'analog{nodeId:03d}')
        self.analogLogs[nodeId].append(np.concatenate(([self.time], values)))

    #--------------------------------------------------------------------------
    def run(self, until:float)->None:
        """
        Dispatch events in time order up to and including time until.

        Exceptions raised by node callbacks are not caught: fatal errors such as
        a causality violation abort the run.
        """

        log.info('Running until %.6fs (%d events queued)', until,
                 len(self.eventq))
        while (self.eventq and self.eventq[0][0] <= until):
            time, _, job = heapq.heappop(self.eventq)
            if (job.cancelled):
                self.__nDead -= 1
                continue
            self.time = time
            logger.setSimTime(time)
            job.done = True
            self.stats['events'] += 1
            job.callback(*job.args)

        self.time = max(self.time, float(until))
        logger.setSimTime(self.time)

    #--------------------------------------------------------------------------
    def reset(self)->None:
        """Clear clock, event queue, analog records and statistics."""

        self.eventq.clear()
        self.__nDead = 0
        self.analogLogs.clear()
        self.time = 0.0
        logger.setSimTime(0.0)
        for key in self.stats:
            self.stats[key] = 0

    #--------------------------------------------------------------------------
    def getStatsReport(self)->str:
        """Return formatted kernel statistics report."""

        cw = 22
        cw2 = 10
        pendingJobs = sum(1 for _, _, j in self.eventq if j.pending)
        report = [
            f"\nncsnet: Kernel Summary",
            f"{' Virtual Time (s):':{cw}} {self.time:>{cw2}.4f}",
            f"{' Nodes:':{cw}} {len(self.nodes):>{cw2}}",
            f"{' Events Dispatched:':{cw}} {self.stats['events']:>{cw2}}",
            f"{' Jobs Scheduled:':{cw}} {self.stats['scheduled']:>{cw2}}",
            f"{' Jobs Pending:':{cw}} {pendingJobs:>{cw2}}",
            f"{' Jobs Cancelled:':{cw}} {self.stats['cancelled']:>{cw2}}",
            f"{' Failed Cancels:':{cw}} {self.stats['cancelFailed']:>{cw2}}",
            f"{' Heap Compactions:':{cw}} {self.stats['compactions']:>{cw2}}",
            f"{' Messages Sent:':{cw}} {self.stats['msgSent']:>{cw2}}",
            f"{' Bits Sent:':{cw}} {self.stats['bitsSent']:>{cw2}}",
        ]
        line = '-' * max([len(line) for line in report])
        report.insert(1, line)
        report.append(line)
        return "\n".join(report)

    ## Helper Methods ========================================================#
    def _compact(self)->None:
        """Rebuild the heap without cancelled jobs."""
        before = len(self.eventq)
        self.eventq[:] = [e for e in self.eventq if not (e[2].cancelled)]
        heapq.heapify(self.eventq)
        self.__nDead = 0
        self.stats['compactions'] += 1
        log.debug('Compacted event queue %d -> %d', before, len(self.eventq))

    #--------------------------------------------------------------------------
    def _nextJid(self)->int:
        """Return next sequential job id (heap tie-breaker)."""
        self.__jid += 1
        return self.__jid

###############################################################################
