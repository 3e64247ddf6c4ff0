"""Pydantic models for template analytics."""

from pydantic import BaseModel, Field


class MonthlyUsage(BaseModel):
    """Instances created and completed in one calendar month."""

    month: str  # YYYY-MM
    instances_created: int = Field(default=0, ge=0)
    instances_completed: int = Field(default=0, ge=0)


class TemplateAnalytics(BaseModel):
    """Completion statistics for one template across all its instances."""

    template_id: str
    total_instances: int
    completed_instances: int
    average_completion_time_minutes: int
    completion_rate: float
    usage_by_month: list[MonthlyUsage]
