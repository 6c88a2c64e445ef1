"""Error taxonomy for the job coordinator.

Each error carries the HTTP status the API layer answers with. Request-scoped
errors go back to the caller; collaborator errors end up as a failed job
state in the monitor. None of them terminate the process.
"""


class CoordinatorError(Exception):
    """Base class for coordinator errors."""

    status_code = 500


class BadRequestError(CoordinatorError):
    """Malformed job submission or worker request."""

    status_code = 400


class JobNotFoundError(CoordinatorError):
    """No live job is registered under the given id."""

    status_code = 404

    def __init__(self, job_id: str):
        super().__init__(f"Job '{job_id}' not found")
        self.job_id = job_id


class CapacityExceededError(CoordinatorError):
    """Every partition of the job has already been handed out."""

    status_code = 409

    def __init__(self, job_id: str, total_workers: int):
        super().__init__(
            f"Job '{job_id}' has already assigned all {total_workers} partitions"
        )
        self.job_id = job_id
        self.total_workers = total_workers


class JobClosedError(CoordinatorError):
    """The job has finished; it takes no more partition claims or chunks."""

    status_code = 409

    def __init__(self, job_id: str, state: str):
        super().__init__(f"Job '{job_id}' is closed ({state})")
        self.job_id = job_id
        self.state = state


class UpstreamUnavailableError(CoordinatorError):
    """The orchestrator or the storage service failed or could not be reached."""

    status_code = 502


class ArtifactIOError(CoordinatorError):
    """Reading or writing a merged artifact on local storage failed."""

    status_code = 500
