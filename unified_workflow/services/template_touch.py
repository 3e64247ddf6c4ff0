"""Template "touch" - bump a template's updated_at/updated_by after a child mutation.

Touches are best-effort: a failure is logged and recorded, never raised to
the caller of the mutation. Background touches run as their own asyncio
tasks with bounded retries; failures land in ``failures``.
"""

import asyncio
import logging
from dataclasses import dataclass

from unified_workflow.db.repository import Collection, EntityRepository, now_iso
from unified_workflow.errors import NotFoundError, RepositoryError

logger = logging.getLogger(__name__)


@dataclass
class TouchFailure:
    """A background touch that gave up."""

    template_id: str
    actor: str
    attempts: int
    error: str


class TemplateTouchQueue:
    """Runs template touches inline or in the background."""

    def __init__(
        self,
        repository: EntityRepository,
        max_attempts: int = 3,
        retry_delay: float = 0.05,
    ) -> None:
        self._repo = repository
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay
        self._pending: set[asyncio.Task[None]] = set()
        self.failures: list[TouchFailure] = []

    async def _touch_once(self, template_id: str, actor: str) -> None:
        await self._repo.update(
            Collection.TEMPLATES,
            template_id,
            {"updated_at": now_iso(), "updated_by": actor},
        )

    async def touch(self, template_id: str, actor: str) -> bool:
        """Touch inline. Returns False (after logging) instead of raising."""
        try:
            await self._touch_once(template_id, actor)
        except (NotFoundError, RepositoryError) as e:
            logger.warning(f"Failed to update template timestamp for {template_id}: {e}")
            return False
        except Exception:
            logger.exception(f"Unexpected error updating template timestamp for {template_id}")
            return False
        return True

    def schedule(self, template_id: str, actor: str) -> asyncio.Task[None]:
        """Touch in the background without blocking the caller."""
        task = asyncio.create_task(self._touch_with_retry(template_id, actor))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _touch_with_retry(self, template_id: str, actor: str) -> None:
        attempt = 0
        while True:
            attempt += 1
            try:
                await self._touch_once(template_id, actor)
                return
            except NotFoundError as e:
                # Template is gone; retrying cannot help
                self._record_failure(template_id, actor, attempt, e)
                return
            except RepositoryError as e:
                if attempt >= self._max_attempts:
                    self._record_failure(template_id, actor, attempt, e)
                    return
                logger.warning(
                    f"Template touch attempt {attempt}/{self._max_attempts} "
                    f"failed for {template_id}: {e}"
                )
                await asyncio.sleep(self._retry_delay * attempt)
            except Exception as e:
                logger.exception(
                    f"Unexpected error updating template timestamp for {template_id}"
                )
                self._record_failure(template_id, actor, attempt, e)
                return

    def _record_failure(
        self, template_id: str, actor: str, attempts: int, error: Exception
    ) -> None:
        self.failures.append(
            TouchFailure(
                template_id=template_id, actor=actor, attempts=attempts, error=str(error)
            )
        )
        logger.error(
            f"Gave up updating template timestamp for {template_id} "
            f"after {attempts} attempt(s): {error}"
        )

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for all outstanding background touches."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
