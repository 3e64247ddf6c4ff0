"""Analytics Aggregator - completion statistics and trailing monthly usage for a template."""

from datetime import datetime, timezone

from unified_workflow.db.repository import Collection, EntityRepository, Range
from unified_workflow.models.analytics import MonthlyUsage, TemplateAnalytics
from unified_workflow.models.instance import InstanceStatus
from unified_workflow.services.progress import round_half_up

USAGE_MONTHS = 12


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO timestamp; naive values are taken as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def trailing_months(now: datetime, count: int = USAGE_MONTHS) -> list[str]:
    """``YYYY-MM`` labels for the last ``count`` months, oldest first, ending with ``now``'s."""
    months = []
    for i in range(count - 1, -1, -1):
        year, month_index = divmod(now.year * 12 + now.month - 1 - i, 12)
        months.append(f"{year:04d}-{month_index + 1:02d}")
    return months


def month_range(month: str) -> Range:
    """Prefix range matching every ISO timestamp within a ``YYYY-MM`` month."""
    return Range(gte=f"{month}-01", lt=f"{month}-32")


class AnalyticsAggregator:
    """Computes per-template analytics from instance rows."""

    def __init__(self, repository: EntityRepository) -> None:
        self._repo = repository

    async def template_analytics(
        self, template_id: str, now: datetime | None = None
    ) -> TemplateAnalytics:
        instances = await self._repo.list(Collection.INSTANCES, {"template_id": template_id})

        total = len(instances)
        completed = [i for i in instances if i["status"] == InstanceStatus.COMPLETED.value]
        completion_rate = (len(completed) / total) * 100 if total else 0.0

        timed = [i for i in completed if i.get("started_at") and i.get("completed_at")]
        if timed:
            total_seconds = sum(
                (
                    parse_timestamp(i["completed_at"]) - parse_timestamp(i["started_at"])
                ).total_seconds()
                for i in timed
            )
            average_minutes = total_seconds / len(timed) / 60
        else:
            average_minutes = 0.0

        return TemplateAnalytics(
            template_id=template_id,
            total_instances=total,
            completed_instances=len(completed),
            average_completion_time_minutes=int(round_half_up(average_minutes)),
            completion_rate=round_half_up(completion_rate, 2),
            usage_by_month=await self.usage_by_month(template_id, now),
        )

    async def usage_by_month(
        self, template_id: str, now: datetime | None = None
    ) -> list[MonthlyUsage]:
        """Instances created and completed in each of the trailing 12 months."""
        now = now or datetime.now(timezone.utc)
        usage = []
        for month in trailing_months(now):
            created = await self._repo.count_where(
                Collection.INSTANCES,
                {"template_id": template_id, "created_at": month_range(month)},
            )
            completed = await self._repo.count_where(
                Collection.INSTANCES,
                {
                    "template_id": template_id,
                    "status": InstanceStatus.COMPLETED.value,
                    "completed_at": month_range(month),
                },
            )
            usage.append(
                MonthlyUsage(
                    month=month, instances_created=created, instances_completed=completed
                )
            )
        return usage
