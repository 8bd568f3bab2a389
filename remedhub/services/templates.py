import uuid
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.models import ChecklistTemplateItem


@dataclass(frozen=True)
class TemplateItem:
    category: str
    item_name: str
    is_required: bool = True
    sort_order: int = 0
    item_description: Optional[str] = None


# Used when an organization has not configured its own template
DEFAULT_CHECKLIST: List[TemplateItem] = [
    TemplateItem("safety", "Work area secured and signage posted", True, 1),
    TemplateItem("safety", "PPE inspected and worn by all crew members", True, 2),
    TemplateItem("safety", "Negative air / containment verified", True, 3),
    TemplateItem("safety", "Decontamination procedures followed", True, 4),
    TemplateItem("quality", "Visual inspection of work area passed", True, 1),
    TemplateItem("quality", "Clearance air sampling collected", False, 2,
                 "Required where the scope calls for clearance testing"),
    TemplateItem("quality", "All scope items completed", True, 3),
    TemplateItem("cleanup", "Containment removed", True, 1),
    TemplateItem("cleanup", "Waste bagged, labeled and staged for disposal", True, 2),
    TemplateItem("cleanup", "Equipment decontaminated and removed", True, 3),
    TemplateItem("cleanup", "Site left broom clean", False, 4),
    TemplateItem("documentation", "Before photos taken", True, 1),
    TemplateItem("documentation", "After photos taken", True, 2),
    TemplateItem("documentation", "Waste manifest completed", True, 3),
    TemplateItem("documentation", "Customer walkthrough and sign-off", False, 4),
]


class ChecklistTemplateProvider:
    def default_items(self, organization_id: uuid.UUID) -> List[TemplateItem]:
        raise NotImplementedError


class SqlChecklistTemplateProvider(ChecklistTemplateProvider):
    def __init__(self, db: Session):
        self.db = db

    def default_items(self, organization_id: uuid.UUID) -> List[TemplateItem]:
        rows = (
            self.db.query(ChecklistTemplateItem)
            .filter(
                ChecklistTemplateItem.organization_id == organization_id,
                ChecklistTemplateItem.is_active.is_(True),
            )
            .order_by(ChecklistTemplateItem.category, ChecklistTemplateItem.sort_order)
            .all()
        )
        if not rows:
            return list(DEFAULT_CHECKLIST)
        return [
            TemplateItem(
                category=r.category,
                item_name=r.item_name,
                is_required=bool(r.is_required),
                sort_order=r.sort_order or 0,
                item_description=r.item_description,
            )
            for r in rows
        ]
