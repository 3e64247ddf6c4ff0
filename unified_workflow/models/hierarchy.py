"""Pydantic models for the Stage / Task / Step / Element levels of a template."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

# =============================================================================
# Enums
# =============================================================================


class TaskType(str, Enum):
    """Kinds of task within a stage."""

    STANDARD = "standard"
    APPROVAL = "approval"
    REVIEW = "review"
    AUTOMATED = "automated"


class StepType(str, Enum):
    """Kinds of step within a task."""

    FORM = "form"
    APPROVAL = "approval"
    REVIEW = "review"
    AUTOMATED = "automated"
    CONDITIONAL = "conditional"


class ElementType(str, Enum):
    """Closed set of UI element kinds an Element can be."""

    # Form elements
    TEXT_INPUT = "text_input"
    TEXTAREA = "textarea"
    NUMBER_INPUT = "number_input"
    EMAIL_INPUT = "email_input"
    URL_INPUT = "url_input"
    DROPDOWN = "dropdown"
    RADIO_GROUP = "radio_group"
    RADIO_BUTTON = "radio_button"
    CHECKBOX = "checkbox"
    CHECKBOX_GROUP = "checkbox_group"
    DATE_PICKER = "date_picker"
    TIME_PICKER = "time_picker"
    FILE_UPLOAD = "file_upload"
    RATING_SCALE = "rating_scale"
    DATA_TABLE = "data_table"
    # Content elements
    HEADING = "heading"
    PARAGRAPH = "paragraph"
    INSTRUCTIONS = "instructions"
    RICH_TEXT = "rich_text"
    LINK = "link"
    DIVIDER = "divider"
    IMAGE = "image"
    IMAGE_GALLERY = "image_gallery"
    SIGNATURE_PAD = "signature_pad"
    # User interaction elements
    BUTTON_GROUP = "button_group"
    PROGRESS_INDICATOR = "progress_indicator"
    NOTIFICATION_BANNER = "notification_banner"
    # Data collection elements
    ADDRESS_INPUT = "address_input"
    PHONE_INPUT = "phone_input"
    # Integration elements
    PRODUCTS_SERVICES = "products_services"
    PRODUCTS_SERVICES_SELECTOR = "products_services_selector"
    TEMPLATE_SELECTOR = "template_selector"
    CLIENT_INFO = "client_info"
    CLIENT_INFO_DISPLAY = "client_info_display"
    API_INTEGRATION = "api_integration"
    # Workflow control elements
    CONDITIONAL_LOGIC = "conditional_logic"
    REQUIRED_VALIDATION = "required_validation"
    CUSTOM_VALIDATION = "custom_validation"
    # Review and analytics elements
    SUMMARY_PAGE = "summary_page"
    SUMMARY_DISPLAY = "summary_display"
    ANALYTICS_DISPLAY = "analytics_display"
    CONFIRMATION = "confirmation"
    CONFIRMATION_CHECKBOX = "confirmation_checkbox"
    DATA_REVIEW = "data_review"

    @classmethod
    def is_valid(cls, value: str) -> bool:
        """Check whether a raw string names a known element kind."""
        return value in cls._value2member_map_


# =============================================================================
# Persisted entities (tree nodes)
# =============================================================================


class AuditFields(BaseModel):
    """Audit columns shared by every hierarchy row."""

    created_at: str
    updated_at: str
    created_by: str | None = None
    updated_by: str | None = None


class Element(AuditFields):
    """Leaf unit a user interacts with inside a step."""

    id: str
    step_id: str
    element_type: str
    element_key: str
    element_order: int
    label: str | None = None
    placeholder: str | None = None
    help_text: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    is_required: bool = False
    validation_rules: dict[str, Any] = Field(default_factory=dict)
    condition_logic: dict[str, Any] = Field(default_factory=dict)
    client_visible: bool = True


class Step(AuditFields):
    """A single screen/unit of work within a task."""

    id: str
    task_id: str
    name: str
    description: str | None = None
    step_order: int
    step_type: str = StepType.FORM.value
    is_required: bool = True
    allow_skip: bool = False
    auto_advance: bool = False
    show_progress: bool = True
    allow_back_navigation: bool = True
    save_progress: bool = True
    client_visible: bool = True
    client_description: str | None = None
    condition_logic: dict[str, Any] = Field(default_factory=dict)
    validation_rules: dict[str, Any] = Field(default_factory=dict)
    # Populated by the hierarchy loader
    elements: list[Element] = Field(default_factory=list)


class Task(AuditFields):
    """A unit of work within a stage, made of ordered steps."""

    id: str
    stage_id: str
    name: str
    description: str | None = None
    task_order: int
    task_type: str = TaskType.STANDARD.value
    is_required: bool = True
    allow_skip: bool = False
    auto_advance: bool = False
    assigned_to: str | None = None
    estimated_duration_minutes: int | None = None
    due_date_offset_days: int | None = None
    client_visible: bool = False
    client_description: str | None = None
    condition_logic: dict[str, Any] = Field(default_factory=dict)
    depends_on_task_ids: list[str] = Field(default_factory=list)
    # Populated by the hierarchy loader
    steps: list[Step] = Field(default_factory=list)


class Stage(AuditFields):
    """Top-level phase of a template, made of ordered tasks."""

    id: str
    template_id: str
    name: str
    description: str | None = None
    stage_order: int
    is_required: bool = True
    allow_skip: bool = False
    auto_advance: bool = False
    client_visible: bool = True
    client_description: str | None = None
    condition_logic: dict[str, Any] = Field(default_factory=dict)
    icon: str | None = None
    color: str | None = None
    # Populated by the hierarchy loader
    tasks: list[Task] = Field(default_factory=list)


# =============================================================================
# Create requests
# =============================================================================


class StageCreate(BaseModel):
    """Request model for creating a stage."""

    name: str
    description: str | None = None
    stage_order: int | None = None
    is_required: bool = True
    allow_skip: bool = False
    auto_advance: bool = False
    client_visible: bool = True
    client_description: str | None = None
    condition_logic: dict[str, Any] = Field(default_factory=dict)
    icon: str | None = None
    color: str | None = None
    created_by: str


class TaskCreate(BaseModel):
    """Request model for creating a task."""

    name: str
    description: str | None = None
    task_order: int | None = None
    task_type: TaskType = TaskType.STANDARD
    is_required: bool = True
    allow_skip: bool = False
    auto_advance: bool = False
    assigned_to: str | None = None
    estimated_duration_minutes: int | None = None
    due_date_offset_days: int | None = None
    client_visible: bool = False
    client_description: str | None = None
    condition_logic: dict[str, Any] = Field(default_factory=dict)
    depends_on_task_ids: list[str] = Field(default_factory=list)
    created_by: str


class StepCreate(BaseModel):
    """Request model for creating a step."""

    name: str
    description: str | None = None
    step_order: int | None = None
    step_type: StepType = StepType.FORM
    is_required: bool = True
    allow_skip: bool = False
    auto_advance: bool = False
    show_progress: bool = True
    allow_back_navigation: bool = True
    save_progress: bool = True
    client_visible: bool = True
    client_description: str | None = None
    condition_logic: dict[str, Any] = Field(default_factory=dict)
    validation_rules: dict[str, Any] = Field(default_factory=dict)
    created_by: str


class ElementCreate(BaseModel):
    """Request model for creating an element."""

    element_type: str
    element_key: str
    element_order: int | None = None
    label: str | None = None
    placeholder: str | None = None
    help_text: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    is_required: bool = False
    validation_rules: dict[str, Any] = Field(default_factory=dict)
    condition_logic: dict[str, Any] = Field(default_factory=dict)
    client_visible: bool = True
    created_by: str


# =============================================================================
# Partial updates - only fields explicitly set are applied
# =============================================================================


class StageUpdate(BaseModel):
    """Partial update for a stage."""

    name: str | None = None
    description: str | None = None
    stage_order: int | None = None
    is_required: bool | None = None
    allow_skip: bool | None = None
    auto_advance: bool | None = None
    client_visible: bool | None = None
    client_description: str | None = None
    condition_logic: dict[str, Any] | None = None
    icon: str | None = None
    color: str | None = None


class TaskUpdate(BaseModel):
    """Partial update for a task."""

    name: str | None = None
    description: str | None = None
    task_order: int | None = None
    task_type: TaskType | None = None
    is_required: bool | None = None
    allow_skip: bool | None = None
    auto_advance: bool | None = None
    assigned_to: str | None = None
    estimated_duration_minutes: int | None = None
    due_date_offset_days: int | None = None
    client_visible: bool | None = None
    client_description: str | None = None
    condition_logic: dict[str, Any] | None = None
    depends_on_task_ids: list[str] | None = None


class StepUpdate(BaseModel):
    """Partial update for a step."""

    name: str | None = None
    description: str | None = None
    step_order: int | None = None
    step_type: StepType | None = None
    is_required: bool | None = None
    allow_skip: bool | None = None
    auto_advance: bool | None = None
    show_progress: bool | None = None
    allow_back_navigation: bool | None = None
    save_progress: bool | None = None
    client_visible: bool | None = None
    client_description: str | None = None
    condition_logic: dict[str, Any] | None = None
    validation_rules: dict[str, Any] | None = None


class ElementUpdate(BaseModel):
    """Partial update for an element."""

    element_type: str | None = None
    element_key: str | None = None
    element_order: int | None = None
    label: str | None = None
    placeholder: str | None = None
    help_text: str | None = None
    config: dict[str, Any] | None = None
    is_required: bool | None = None
    validation_rules: dict[str, Any] | None = None
    condition_logic: dict[str, Any] | None = None
    client_visible: bool | None = None
