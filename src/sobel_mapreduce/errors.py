"""
Exception types raised by the Sobel MapReduce pipeline.
"""


class SobelMapReduceError(Exception):
    """Base class for all pipeline errors."""


class MalformedInputError(SobelMapReduceError, ValueError):
    """Input matrix header or token count does not match its contents."""


class OrderingViolationError(SobelMapReduceError, RuntimeError):
    """A pixel reached aggregation without exactly one group per component.

    Raised when the shuffle delivered groups out of order, split a pixel's
    groups across aggregators, or dropped a group altogether.
    """


class JobConfigurationError(SobelMapReduceError, ValueError):
    """Job parameters violate a constraint declared by the job module."""


class JobFailedError(SobelMapReduceError, RuntimeError):
    """A map or reduce task failed and the job was aborted."""

    def __init__(self, job_id: str, message: str):
        super().__init__(f"Job {job_id} failed: {message}")
        self.job_id = job_id
