"""IAM helper constructs and utilities for the DataEDU stacks."""

from . import utils  # noqa: F401
from .job_execution_role import JobExecutionRoleConstruct

__all__ = ["utils", "JobExecutionRoleConstruct"]
