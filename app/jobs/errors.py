from app.planning.errors import PlanEngineError

STALE_JOB_MESSAGE = "Previous generation timed out. Please try again."
INTERRUPTED_JOB_MESSAGE = "Generation process was interrupted. Please try again."


class StaleJobError(PlanEngineError):
    """A pending job outlived the stale threshold with no generation running."""

    def __init__(self, user_id: str, job_id: str | None, age_seconds: float):
        self.user_id = user_id
        self.job_id = job_id
        self.age_seconds = age_seconds
        super().__init__(f"Job {job_id} for user {user_id} is stale ({age_seconds:.0f}s old)")


class PlanJobRequestError(PlanEngineError):
    """A plan job request is invalid (maps to HTTP 400)."""
