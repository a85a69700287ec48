from .jobs import Job, JobFailedError, JobNotFoundError, JobStatus, JobStore
from .seeding import BatchSeeder, SeedProgress

__all__ = [
    "BatchSeeder",
    "Job",
    "JobFailedError",
    "JobNotFoundError",
    "JobStatus",
    "JobStore",
    "SeedProgress",
]
