"""Runtime configuration read from the environment."""

import os

from pydantic import BaseModel, Field


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseModel):
    """Settings for the workflow engine."""

    database_path: str = "./data/workflow.db"
    log_level: str = "INFO"

    element_batch_size: int = Field(default=10, ge=1)
    """Number of steps per element query once batching kicks in."""

    element_batch_threshold: int = Field(default=20, ge=0)
    """Element loading is batched only when the step count exceeds this."""

    touch_max_attempts: int = Field(default=3, ge=1)
    """Attempts for a background template touch before it is recorded as failed."""

    admin_roles: list[str] = Field(default_factory=lambda: ["SUPER_ADMIN", "ADMIN"])

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        defaults = cls()
        return cls(
            database_path=os.getenv("DATABASE_PATH", defaults.database_path),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
            element_batch_size=int(
                os.getenv("ELEMENT_BATCH_SIZE", defaults.element_batch_size)
            ),
            element_batch_threshold=int(
                os.getenv("ELEMENT_BATCH_THRESHOLD", defaults.element_batch_threshold)
            ),
            touch_max_attempts=int(
                os.getenv("TOUCH_MAX_ATTEMPTS", defaults.touch_max_attempts)
            ),
            admin_roles=_split_csv(os.getenv("ADMIN_ROLES", ""))
            or defaults.admin_roles,
        )
