"""MCP tool implementations for memoir."""

from memoir.tools.memory_job_create import memory_job_create
from memoir.tools.memory_job_process import memory_job_process
from memoir.tools.memory_job_status import memory_job_status
from memoir.tools.profile import profile_get
from memoir.tools.schedule import memory_schedule

__all__ = [
    "memory_job_create",
    "memory_job_process",
    "memory_job_status",
    "profile_get",
    "memory_schedule",
]
