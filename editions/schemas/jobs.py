from pydantic import BaseModel, Field


class JobOptions(BaseModel):
    """Per-job delivery policy: attempts, exponential backoff base, dedup."""

    max_attempts: int = Field(3, ge=1)
    backoff_delay: int = Field(2, ge=0, description="Exponential backoff base, seconds")
    remove_on_complete: bool = True
    delay: int = Field(0, ge=0, description="Initial countdown, seconds")
    dedup_key: str | None = None


class JobHandle(BaseModel):
    id: str
    queue: str
    job_name: str
