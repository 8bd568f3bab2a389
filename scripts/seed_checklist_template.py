"""
Seed an organization's completion checklist template with the built-in default list.

Usage:
    python scripts/seed_checklist_template.py <organization_id> [--replace]

Existing items are left alone unless --replace is given, in which case the
organization's current template items are deactivated first.
"""
import argparse
import os
import sys
import uuid

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from remedhub.db import Base, SessionLocal, engine, unit_of_work
from remedhub.models.models import ChecklistTemplateItem
from remedhub.services.templates import DEFAULT_CHECKLIST


def seed_checklist_template(organization_id: uuid.UUID, replace: bool = False) -> int:
    """Insert missing default items for the organization. Returns how many were added."""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        with unit_of_work(db):
            if replace:
                db.query(ChecklistTemplateItem).filter(
                    ChecklistTemplateItem.organization_id == organization_id
                ).update({ChecklistTemplateItem.is_active: False}, synchronize_session=False)

            existing = {
                (row.category, row.item_name): row
                for row in db.query(ChecklistTemplateItem).filter(
                    ChecklistTemplateItem.organization_id == organization_id
                )
            }
            added = 0
            for tmpl in DEFAULT_CHECKLIST:
                row = existing.get((tmpl.category, tmpl.item_name))
                if row is not None:
                    if replace:
                        row.is_active = True
                        row.is_required = tmpl.is_required
                        row.sort_order = tmpl.sort_order
                        row.item_description = tmpl.item_description
                    continue
                db.add(ChecklistTemplateItem(
                    organization_id=organization_id,
                    category=tmpl.category,
                    item_name=tmpl.item_name,
                    item_description=tmpl.item_description,
                    is_required=tmpl.is_required,
                    sort_order=tmpl.sort_order,
                    is_active=True,
                ))
                added += 1
        return added
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the completion checklist template for an organization")
    parser.add_argument("organization_id", type=uuid.UUID)
    parser.add_argument("--replace", action="store_true", help="Deactivate the current template before seeding")
    args = parser.parse_args()

    count = seed_checklist_template(args.organization_id, replace=args.replace)
    print(f"✅ Seeded {count} checklist template items for organization {args.organization_id}")
