#!/usr/bin/env python3
"""
Seed script for a Client Onboarding workflow template.

Builds a published template with three stages:
1. Kickoff (company details, primary contacts)
2. Compliance (document upload, signed agreement)
3. Go-Live (training scheduling, confirmation)

and starts one instance with the first step already submitted.

Run with: uv run python scripts/seed_onboarding_workflow.py
"""

import asyncio
import os
import sys

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from unified_workflow.config import Settings
from unified_workflow.db.database import close_database, get_db, init_database
from unified_workflow.db.sqlite_store import SQLiteRepository
from unified_workflow.models import (
    ElementCreate,
    ExecutionContext,
    InstanceStatus,
    ProgressUpdate,
    StageCreate,
    StepCreate,
    StepDataSubmission,
    TaskCreate,
    TemplateCreate,
    TemplateFilters,
    TemplateUpdate,
)
from unified_workflow.services import WorkflowService

TEMPLATE_NAME = "Client Onboarding"
SEED_USER = "seed-admin"

# stage -> task -> [(step, [(element_type, element_key, label)])]
STRUCTURE = {
    "Kickoff": {
        "Collect company details": [
            (
                "Company",
                [
                    ("text_input", "legal_name", "Legal name"),
                    ("address_input", "billing_address", "Billing address"),
                    ("dropdown", "company_size", "Company size"),
                ],
            ),
            (
                "Primary contacts",
                [
                    ("email_input", "primary_email", "Primary contact email"),
                    ("phone_input", "primary_phone", "Primary contact phone"),
                ],
            ),
        ],
    },
    "Compliance": {
        "Paperwork": [
            ("Documents", [("file_upload", "tax_certificate", "Tax certificate")]),
            ("Agreement", [("signature_pad", "msa_signature", "Signed MSA")]),
        ],
    },
    "Go-Live": {
        "Training": [
            ("Schedule", [("date_picker", "training_date", "Training date")]),
            ("Confirm", [("confirmation_checkbox", "ready", "Ready to go live")]),
        ],
    },
}


async def main():
    """Seed the database with an onboarding template and one running instance."""
    settings = Settings.from_env()
    print(f"Using database: {settings.database_path}")

    await init_database(settings.database_path)
    service = WorkflowService(SQLiteRepository(await get_db()), settings)
    await service.repository.assign_role(SEED_USER, "ADMIN")

    # Deactivate earlier seeds of the same template
    existing = await service.templates.list_templates(TemplateFilters(is_active=True))
    for template in existing:
        if template.name == TEMPLATE_NAME:
            print(f"Deactivating existing template: {template.id}")
            for old in await service.instances.list_instances(
                template.id, InstanceStatus.ACTIVE
            ):
                await service.instances.update_progress(
                    old.id,
                    ProgressUpdate(status=InstanceStatus.CANCELLED, updated_by=SEED_USER),
                )
            await service.templates.delete_template(template.id, SEED_USER)

    print("Creating template...")
    template = await service.templates.create_template(
        TemplateCreate(
            name=TEMPLATE_NAME,
            description="Bring a newly signed client from kickoff to go-live",
            template_type="standard",
            color="#2E7D32",
            category="customer-success",
            tags=["onboarding", "customer-success"],
            created_by=SEED_USER,
        )
    )

    first_step_id = None
    for stage_name, tasks in STRUCTURE.items():
        stage = await service.stages.create(
            template.id, StageCreate(name=stage_name, created_by=SEED_USER)
        )
        print(f"  Stage {stage.stage_order}: {stage.name}")
        for task_name, steps in tasks.items():
            task = await service.tasks.create(
                stage.id,
                TaskCreate(name=task_name, client_visible=True, created_by=SEED_USER),
            )
            for step_name, elements in steps:
                step = await service.steps.create(
                    task.id, StepCreate(name=step_name, created_by=SEED_USER)
                )
                first_step_id = first_step_id or step.id
                for element_type, key, label in elements:
                    await service.elements.create(
                        step.id,
                        ElementCreate(
                            element_type=element_type,
                            element_key=key,
                            label=label,
                            is_required=True,
                            created_by=SEED_USER,
                        ),
                    )

    template = await service.templates.update_template(
        template.id, TemplateUpdate(is_published=True, updated_by=SEED_USER)
    )
    print(f"Published template {template.id} (version {template.version})")

    # ==========================================================================
    # SAMPLE INSTANCE
    # ==========================================================================

    instance = await service.instances.create_instance(
        template.id,
        ExecutionContext(
            name="Acme Corp onboarding",
            client_id="acme",
            instance_data={"account_manager": "jordan"},
            created_by=SEED_USER,
        ),
    )
    await service.instances.update_progress(
        instance.id,
        ProgressUpdate(
            status=InstanceStatus.ACTIVE,
            current_step_id=first_step_id,
            updated_by=SEED_USER,
        ),
    )
    await service.instances.submit_step_data(
        instance.id,
        first_step_id,
        StepDataSubmission(
            element_key="legal_name",
            element_value="Acme Corporation",
            data_type="string",
            submitted_by=SEED_USER,
        ),
    )

    view = await service.instances.get_instance_with_progress(instance.id)

    print("\n" + "=" * 70)
    print("SEED COMPLETE!")
    print("=" * 70)
    print(f"\nTemplate: {TEMPLATE_NAME} ({template.id})")
    print(f"Instance: {view.name} ({view.id}) - {view.status.value}")
    details = view.progress_details
    print(
        f"Progress: {view.completion_percentage}% "
        f"({details.steps_completed}/{details.total_steps} steps, "
        f"{details.tasks_completed}/{details.total_tasks} tasks, "
        f"{details.stages_completed}/{details.total_stages} stages)"
    )

    await service.close()
    await close_database()


if __name__ == "__main__":
    asyncio.run(main())
