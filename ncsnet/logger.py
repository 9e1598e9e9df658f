"""
Logging configuration for networked control system simulations.

Provides the main program logger, sub-loggers that share its handlers, and a
separate network-traffic logger for the transport nodes. Every log record
carries the current virtual time of the event kernel, so traces read in
simulation order rather than wall-clock order.


Functions
---------
**Setup Functions:**

    setupMain(fileName, fileFormat, fileLevel, outFormat, outLevel)
        Configure and return main program logger.
    setupNet(name, fileName, file, out)
        Configure and return network-traffic logger.

**Logger Management:**

    addLog(name)
        Create logger that uses main logger handlers.
    noneLog(name)
        Create logger with no handlers (warnings only).
    removeLog(name)
        Remove logger and close unshared handlers.

**Handler Management:**

    addMainHandlers(subLog)
        Add main logger handlers to sublevel logger.
    removeHandlers(name)
        Remove all handlers from logger, closing unshared ones.
    closeHandler(handler)
        Close handler and update global variables.
    deepRemoveHandler(handler)
        Remove handler from all loggers and close it.

**Custom Features:**

    customRecordFactory(args, kwargs)
        Add virtual time field to log records.
    setSimTime(time)
        Format and store the virtual time stamped on new records.
    CustomFormatter
        Format log records with bracketed function names and multi-line support.


Global Variables
----------------
log : logging.Logger
    Main logger instance.
consoleHandler : logging.StreamHandler
    Shared console output handler.
fileHandler : logging.FileHandler
    Shared file output handler.
simTime : str
    Current virtual time for log records (seconds, fixed point).


Notes
-----
The event kernel calls setSimTime() before dispatching each event. Loggers
created with addLog() before setupMain() runs are parked in a pending list and
receive the main handlers once they exist.
"""

from typing import Optional
from datetime import datetime
import logging
import os

#-----------------------------------------------------------------------------#

# Logging levels
DEBUG = logging.DEBUG           # 10
INFO = logging.INFO             # 20
WARNING = logging.WARNING       # 30
ERROR = logging.ERROR           # 40
CRITICAL = logging.CRITICAL     # 50

# Log record component formats
SIMTIME = '%(simTime)10s'
DATETIME = '%(asctime)s'
NAME  = '%(name)-8s'
LEVEL = '%(levelname)-7s'
FUNCTION = '%(funcName)s'
MESSAGE = '%(message)s'

# Delimiter strings
CS = ' : '      # Colon with spaces
RAB = '>'       # Right angle bracket
P = '|'         # Pipe
S = ' '         # Space

# Formatting strings
FMT_DATE = '%M:%S'
FMT_OUT = P+SIMTIME+P+S+NAME+CS+LEVEL+S+RAB+S+MESSAGE
FMT_FILE = P+SIMTIME+S+DATETIME+P+S+NAME+S+LEVEL+S+FUNCTION+CS+MESSAGE
FMT_TIME = '{:.6f}'

# Main logger name
MAIN_LOG = 'ncsnet'

# Global variables -----------------------------------------------------------#

# Main logger and main handlers
log = None
consoleHandler = None
fileHandler = None

# Register loggers needing main handlers
pending = []

# Custom logging
oldFactory = logging.getLogRecordFactory()  # Cache for original record factory
simTime = FMT_TIME.format(0.0)              # Initial value of custom field

###############################################################################

class CustomFormatter(logging.Formatter):
    """
    Custom log formatter with bracketed function names and multi-line support.

    Function names are wrapped in brackets with padding, and the log prefix is
    repeated on every line of a multi-line message so that buffer dumps and
    statistics reports stay aligned in the trace.


    Parameters
    ----------
    fmt : str, optional
        Log record format string.
    datefmt : str, optional
        Date/time format string.
    """

    def __init__(self, fmt:str=None, datefmt:str=None)->None:
        super().__init__(fmt, datefmt)

    def format(self, record):
        """
        Apply custom formatting to log record.


        Parameters
        ----------
        record : logging.LogRecord
            Log record to format.


        Returns
        -------
        formatted : str
            Formatted log message string.
        """

        # Pad bracketed function name
        if not (record.funcName.startswith("[")):
            func = f"[{record.funcName}]"
            record.funcName = f"{func:22}"

        # Repeat log prefix after every newline
        newline = '\n'
        if (isinstance(record.msg, str) and (newline in record.msg)):
            record = logging.makeLogRecord(record.__dict__)
            prefixFmt, _, _ = self._fmt.partition(MESSAGE)
            if (DATETIME in prefixFmt):
                if (self.datefmt):
                    record.asctime = self.formatTime(record, self.datefmt)
                else:
                    record.asctime = self.formatTime(record)
            prefix = prefixFmt % record.__dict__
            lines = record.msg.split(newline)
            record.msg = (newline + prefix).join(lines)

        return super().format(record)

###############################################################################

def customRecordFactory(*args, **kwargs):
    """
    Create log record with custom simTime field.


    Returns
    -------
    record : logging.LogRecord
        Log record with simTime attribute from global simTime variable.
    """

    record = oldFactory(*args, **kwargs)
    record.simTime = simTime
    return record

###############################################################################

def setSimTime(time:float)->None:
    """Store virtual time (seconds) to be stamped on subsequent log records."""

    global simTime
    simTime = FMT_TIME.format(time)

###############################################################################

def addMainHandlers(subLog:logging.Logger)->None:
    """
    Add main logger handlers (console, file) to sublevel logger.


    Parameters
    ----------
    subLog : logging.Logger
        Logger to receive main handlers.
    """

    if (consoleHandler is not None):
        subLog.addHandler(consoleHandler)
    if (fileHandler is not None):
        subLog.addHandler(fileHandler)
    subLog.debug('%s logger activated', subLog.name)

###############################################################################

def setupMain(fileName:Optional[str] = MAIN_LOG+'.log',
              fileFormat:Optional[str] = FMT_FILE,
              fileLevel:int = DEBUG,
              outFormat:Optional[str] = FMT_OUT,
              outLevel:int = INFO,
              )->logging.Logger:
    """
    Configure and return main program logger with console and file handlers.


    Parameters
    ----------
    fileName : str, default='ncsnet.log'
        Log file name. If None, file output disabled.
    fileFormat : str, optional
        Format string for file handler. If None, file output disabled.
    fileLevel : int, default=DEBUG
        Minimum log level for file handler.
    outFormat : str, optional
        Format string for console handler. If None, console output disabled.
    outLevel : int, default=INFO
        Minimum log level for console handler.


    Returns
    -------
    log : logging.Logger
        Main logger instance with configured handlers.


    Notes
    -----
    - Installs the custom log record factory for the virtual time field.
    - Processes pending loggers that were created before main logger setup.
    - Global variables updated: log, consoleHandler, fileHandler.
    """

    global log, consoleHandler, fileHandler, pending

    if (log is None):

        logging.setLogRecordFactory(customRecordFactory)
        log = logging.getLogger(MAIN_LOG)
        log.setLevel(DEBUG)

        # Console
        if (outFormat is not None):
            if (consoleHandler is None):
                consoleHandler = logging.StreamHandler()
                consoleHandler.set_name('Console handler')
                consoleHandler.setLevel(outLevel)
                consoleHandler.setFormatter(CustomFormatter(outFormat))
            log.addHandler(consoleHandler)
            log.info('Console logging started')

        # File
        if ((fileFormat is not None) and (fileName is not None)):
            if (fileHandler is None):
                fileHandler = logging.FileHandler(fileName)
                fileHandler.set_name('File handler')
                fileHandler.setLevel(fileLevel)
                fileHandler.setFormatter(CustomFormatter(fileFormat,
                                                         FMT_DATE))
            log.addHandler(fileHandler)
            start = datetime.now().strftime("%m/%d/%Y %H:%M:%S")
            log.info('File logging started at %s in %s',
                     start, os.path.basename(fileName))

        while pending:
            name = pending.pop()
            addMainHandlers(logging.getLogger(name))

    return log

###############################################################################

def addLog(name:str)->logging.Logger:
    """
    Create logger that shares main logger handlers.


    Parameters
    ----------
    name : str
        Logger name.


    Returns
    -------
    logger : logging.Logger
        New or existing logger with main handlers.


    Notes
    -----
    - If main logger not yet created, logger is added to pending list.
    - Returns existing logger if name already registered.
    """

    global pending

    if (name in logging.Logger.manager.loggerDict):
        return logging.getLogger(name)

    thisLog = logging.getLogger(name)
    thisLog.setLevel(DEBUG)
    if (log is None):
        pending.append(name)
    else:
        addMainHandlers(thisLog)
    return thisLog

###############################################################################

def noneLog(name:str)->logging.Logger:
    """
    Create or configure logger with no handlers.


    Parameters
    ----------
    name : str
        Logger name.


    Returns
    -------
    logger : logging.Logger
        Logger with no handlers. WARNING+ messages go to stderr.
    """

    global log

    thisLog = logging.getLogger(name)
    thisLog.setLevel(WARNING)

    if (thisLog.handlers):
        if (thisLog is log):
            while thisLog.handlers:
                deepRemoveHandler(thisLog.handlers[0])
        else:
            removeHandlers(name)

    if (name == MAIN_LOG):
        log = thisLog

    return thisLog

###############################################################################

def closeHandler(handler:logging.Handler)->None:
    """
    Close handler and update global handler variables.


    Parameters
    ----------
    handler : logging.Handler
        Handler to close.
    """

    global consoleHandler
    global fileHandler

    handler.close()

    if (handler is consoleHandler):
        consoleHandler = None
    elif (handler is fileHandler):
        fileHandler = None

###############################################################################

def _loggers():
    """Yield (name, logger) pairs of every registered logging.Logger."""
    for name, thisLog in list(logging.Logger.manager.loggerDict.items()):
        if isinstance(thisLog, logging.Logger):
            yield name, thisLog

###############################################################################

def removeHandlers(name:str)->None:
    """
    Remove all handlers from logger, closing unshared ones.


    Parameters
    ----------
    name : str
        Logger name.
    """

    thisLog = logging.getLogger(name)

    while thisLog.handlers:
        handler = thisLog.handlers[0]
        logging.getLogger(MAIN_LOG).debug('Removing %s from %s',
                                          handler.get_name(), name)
        thisLog.removeHandler(handler)

        # Close handler if no other logger still holds it
        shared = any(handler in l.handlers for _, l in _loggers())
        if not (shared):
            closeHandler(handler)

###############################################################################

def deepRemoveHandler(handler:logging.Handler)->None:
    """
    Remove handler from all loggers and close it.


    Parameters
    ----------
    handler : logging.Handler
        Handler to remove and close.
    """

    if (handler is None):
        return

    for _, thisLog in _loggers():
        if (handler in thisLog.handlers):
            thisLog.removeHandler(handler)
    closeHandler(handler)

###############################################################################

def removeLog(name:str)->None:
    """
    Remove logger and close unshared handlers.

    Handlers shared with other loggers are not closed. Removing the main logger
    resets the global log to None so that setupMain() can run again.
    """

    global log

    thisLog = logging.getLogger(name)
    removeHandlers(name)
    logging.Logger.manager.loggerDict.pop(name, None)
    if (thisLog is log):
        log = None

###############################################################################

def setupNet(name:str = 'net',
             fileName:Optional[str] = 'net.log',
             file:bool = True,
             out:bool = True,
             )->logging.Logger:
    """
    Configure and return network-traffic logger.

    The transport nodes (delay, dropout, orderer, pairer) report every
    ingest, preemption, emission and drop on this logger.


    Parameters
    ----------
    name : str, default='net'
        Logger name.
    fileName : str, default='net.log'
        Network log file name.
    file : bool, default=True
        Enable separate network log file.
    out : bool, default=True
        Enable console output for network logs.


    Returns
    -------
    netLog : logging.Logger
        Network logger with configured handlers.


    Notes
    -----
    - If the main logger has the console handler turned off, the network
      logger does not print to the console even if turned on.
    - With its own log file, network records are kept out of the main file.
    """

    netLog = logging.getLogger(name)
    netLog.setLevel(DEBUG)

    if ((out) and (consoleHandler is not None)):
        netLog.addHandler(consoleHandler)

    if ((file) and (fileName is not None)):
        netFileHandler = logging.FileHandler(fileName)
        netFileHandler.set_name('Network file handler')
        if (fileHandler is not None):
            netFileHandler.setLevel(fileHandler.level)
        else:
            netFileHandler.setLevel(DEBUG)
        netFileHandler.setFormatter(CustomFormatter(FMT_FILE, FMT_DATE))
        netLog.addHandler(netFileHandler)
        start = datetime.now().strftime("%m/%d/%Y %H:%M:%S")
        netLog.info('Network file logging started at %s in %s',
                    start, os.path.basename(fileName))
    elif (fileHandler is not None):
        netLog.addHandler(fileHandler)

    netLog.debug('%s logger activated', name)
    return netLog

###############################################################################
