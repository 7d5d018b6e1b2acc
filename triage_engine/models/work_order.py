"""
Triage Engine Work Order Model

Work orders ("obras") own a dynamic checklist of yes/no questions.
Architects attached to a work order accrue a bounded discount.
"""

from enum import Enum
from typing import Annotated, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from .ticket import EntityId


# =============================================================================
# ENUMS
# =============================================================================

class WorkOrderStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# =============================================================================
# CORE MODELS
# =============================================================================

class ChecklistItem(BaseModel):
    text: str
    done: bool = False

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("checklist text must not be empty")
        return value


Checklist = Dict[str, ChecklistItem]


class WorkOrder(BaseModel):
    """
    A project record.

    `checklist` is the canonical map; the serialised snapshot of it is
    owned by storage and always written together with the map.
    None means no checklist was ever saved; {} means every item was
    deleted.
    """
    id: EntityId
    checklist: Optional[Checklist] = None
    status: WorkOrderStatus = WorkOrderStatus.IN_PROGRESS
    architect_id: Optional[EntityId] = None


class Architect(BaseModel):
    id: EntityId
    discount: float = Field(0.0, ge=0.0, le=20.0)


# =============================================================================
# CHECKLIST COMMANDS
# =============================================================================

class AddItem(BaseModel):
    op: Literal["add"] = "add"


class EditText(BaseModel):
    op: Literal["edit_text"] = "edit_text"
    key: str
    text: str


class DeleteItem(BaseModel):
    op: Literal["delete"] = "delete"
    key: str


class SetDone(BaseModel):
    op: Literal["set_done"] = "set_done"
    key: str
    done: bool


ChecklistOp = Annotated[
    Union[AddItem, EditText, DeleteItem, SetDone],
    Field(discriminator="op"),
]
