# compactflow/common/exceptions.py


class CompactFlowException(Exception):
    """Base exception for the compactflow service."""

    pass


class ConfigurationError(CompactFlowException):
    """Raised when a configuration override is unknown or invalid."""

    pass


class InvalidJobRequest(CompactFlowException):
    """Raised when a job submission body cannot be turned into parameters."""

    pass


class JobNotAdmittedError(CompactFlowException):
    """Raised when execution is requested for a job that does not hold the worker slot."""

    pass


class WorkFunctionLoadError(CompactFlowException):
    """Raised when the configured work function cannot be loaded."""

    pass


class CompactionError(CompactFlowException):
    """Raised by the compactor when a job cannot be completed."""

    pass


class ListenerError(CompactFlowException):
    """Raised when the HTTP listener cannot be started."""

    pass
