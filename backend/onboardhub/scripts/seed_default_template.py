"""Seed script for the default community onboarding template.

Creates one active template with its stages and tasks so a fresh
deployment can create projects right away. Running it twice is a no-op.

Usage:
    python -m onboardhub.scripts.seed_default_template
"""

import asyncio

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from onboardhub.db.session import async_session_factory
from onboardhub.models.project import Stage
from onboardhub.models.template import Template, TemplateTask

TEMPLATE = {
    "name": "Community Onboarding - Full Transition",
    "description": (
        "Standard transition checklist from client intake through go-live: "
        "agreements, banking, owner data, communications, vendors and financial close."
    ),
    "estimated_days": 60,
    "created_by": "system",
}

# (name, description) in order; the first stage starts active
STAGES = [
    ("Client Tasks", "Documents and signatures the board or client must complete"),
    ("Setup & Banking", "Create the association record, open accounts, import owners"),
    ("Portal & Communications", "Welcome letter, portal logins, board setup"),
    ("Vendors & Insurance", "Insurance program, vendor records, association documents"),
    ("Financial Close", "Ledger imports, final financials, fund transfers"),
    ("Go Live", "Turn on collections and hand over to ongoing management"),
]

# Task rows: stage index, title, extra fields
TASKS = [
    (0, "Sign management agreement", {
        "visibility": "external", "assignee_type": "client", "category": "signatures",
        "requires_signature": True,
    }),
    (0, "Upload community documents", {
        "visibility": "external", "assignee_type": "client", "category": "documents",
        "requires_file_upload": True, "due_days_offset": 5,
        "description": "Governing documents, budgets, financial statements, board contacts and vendor list.",
    }),
    (0, "Approve welcome letter", {
        "visibility": "external", "assignee_type": "client", "category": "review", "due_days_offset": 5,
    }),
    (1, "Request records from prior management", {"category": "documents", "due_days_offset": 5}),
    (1, "Create association record", {"category": "setup", "due_days_offset": 5}),
    (1, "Open operating and reserve accounts", {"category": "financial", "due_days_offset": 5}),
    (1, "Import owner roster", {"category": "setup", "due_days_offset": 7}),
    (2, "Send welcome letter to owners", {"category": "communication", "due_days_offset": 10}),
    (2, "Create board portal logins", {"category": "setup", "due_days_offset": 10}),
    (3, "Collect insurance declarations", {
        "visibility": "external", "assignee_type": "client", "category": "documents",
        "requires_file_upload": True, "due_days_offset": 14,
    }),
    (3, "Set up vendor payment records", {"category": "financial", "due_days_offset": 14}),
    (4, "Import opening ledger balances", {"category": "financial", "due_days_offset": 30}),
    (4, "Receive final financials from prior management", {"category": "financial", "due_days_offset": 45}),
    (5, "Turn on collection letters", {"category": "setup", "due_days_offset": 60}),
]


async def seed_default_template(db: AsyncSession) -> Template | None:
    """Create the default template. Returns None if it already exists."""
    existing = await db.execute(select(Template).where(Template.name == TEMPLATE["name"]))
    if existing.scalar_one_or_none() is not None:
        print("Default template already exists. Skipping seed.")
        return None

    template = Template(is_active=True, **TEMPLATE)
    db.add(template)
    await db.flush()

    stages = [
        Stage(
            template_id=template.id,
            name=name,
            description=description,
            order_index=index,
            status="active" if index == 0 else "pending",
        )
        for index, (name, description) in enumerate(STAGES)
    ]
    db.add_all(stages)
    await db.flush()
    print(f"  Created {len(stages)} stages")

    tasks = [
        TemplateTask(
            template_id=template.id,
            stage_id=stages[stage_index].id,
            title=title,
            order_index=order_index,
            **fields,
        )
        for order_index, (stage_index, title, fields) in enumerate(TASKS)
    ]
    db.add_all(tasks)
    await db.flush()

    # Owner import waits on the association record
    by_title = {t.title: t for t in tasks}
    by_title["Import owner roster"].depends_on = by_title["Create association record"].id
    await db.commit()
    print(f"  Created {len(tasks)} tasks")

    print(f"\nTemplate seeded: {template.name} ({template.id})")
    return template


async def main() -> None:
    """Main entry point."""
    print("Seeding default template...")
    print("-" * 50)

    async with async_session_factory() as db:
        try:
            await seed_default_template(db)
        except Exception as e:
            print(f"Error seeding default template: {e}")
            await db.rollback()
            raise


if __name__ == "__main__":
    asyncio.run(main())
