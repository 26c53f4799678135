"""
Household Record and Argument Schemas

Records are the documents household functions read and write. They are
stored as JSON-compatible dicts (model_dump(mode="json")) so a snapshot
of one is a plain copy.

Argument models validate what the assistant asks for before anything
runs. Unknown keys are rejected.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from household_ai.functions.registry import FunctionArgs


# Collection names in the household data store
INVENTORY = "inventory"
SHOPPING_LIST = "shopping_list"
DAY_MENU = "day_menu"
TASKS = "tasks"
RECIPES = "recipes"
SPACES = "spaces"
EMPLOYEES = "employees"

MENU_CYCLE_DAYS = 12


class MealType(str, Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"


class InventoryAction(str, Enum):
    SET = "set"
    ADD = "add"
    SUBTRACT = "subtract"


class TaskStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


# =============================================================================
# RECORDS
# =============================================================================

class HouseholdRecord(BaseModel):
    """Common fields of every stored record."""

    id: str
    updated_at: Optional[datetime] = None


class InventoryItem(HouseholdRecord):
    name: str = Field(..., min_length=1)
    quantity: float = Field(default=0, ge=0)
    unit: str = "unit"


class ShoppingListItem(HouseholdRecord):
    name: str = Field(..., min_length=1)
    quantity: Optional[str] = None
    checked: bool = False
    checked_at: Optional[datetime] = None


class MenuSlot(BaseModel):
    recipe_id: str
    recipe_name: str


class DayMenu(HouseholdRecord):
    """Meals planned for one day of the rotating menu."""

    day_number: int = Field(..., ge=1, le=MENU_CYCLE_DAYS)
    breakfast: Optional[MenuSlot] = None
    lunch: Optional[MenuSlot] = None
    dinner: Optional[MenuSlot] = None


class HouseholdTask(HouseholdRecord):
    task_name: str = Field(..., min_length=1)
    due_date: date
    category: str = "general"
    employee_id: Optional[str] = None
    employee_name: Optional[str] = None
    time_start: str = "09:00"
    time_end: str = "10:00"
    status: TaskStatus = TaskStatus.PENDING
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None


class Recipe(HouseholdRecord):
    name: str = Field(..., min_length=1)
    ingredients: list[str] = Field(default_factory=list)
    instructions: str = ""
    servings: int = Field(default=2, ge=1)
    prep_minutes: Optional[int] = Field(default=None, ge=0)


class Space(HouseholdRecord):
    name: str = Field(..., min_length=1)
    space_type: str = "room"
    floor: Optional[int] = None
    notes: str = ""


class Employee(HouseholdRecord):
    name: str = Field(..., min_length=1)
    role: str = "general"
    phone: Optional[str] = None
    active: bool = True


# =============================================================================
# ARGUMENTS
# =============================================================================

class SwapMenuRecipeArgs(FunctionArgs):
    day_number: int = Field(..., ge=1, le=MENU_CYCLE_DAYS)
    meal_type: MealType
    new_recipe_name: str = Field(..., min_length=1)

    def describe(self) -> str:
        return f"Change day {self.day_number} {self.meal_type.value} to {self.new_recipe_name}"


class UpdateInventoryArgs(FunctionArgs):
    item_name: str = Field(..., min_length=1)
    quantity: float = Field(..., ge=0)
    action: InventoryAction = InventoryAction.SET

    def describe(self) -> str:
        verbs = {
            InventoryAction.SET: "Set",
            InventoryAction.ADD: "Add",
            InventoryAction.SUBTRACT: "Subtract",
        }
        return f"{verbs[self.action]} {self.quantity:g} {self.item_name}"


class MarkShoppingItemArgs(FunctionArgs):
    item_name: str = Field(..., min_length=1)
    checked: bool = True

    def describe(self) -> str:
        return f"{'Check off' if self.checked else 'Uncheck'} {self.item_name}"


class AddToShoppingListArgs(FunctionArgs):
    item_name: str = Field(..., min_length=1)
    quantity: Optional[str] = None

    def describe(self) -> str:
        return f"Add {self.item_name} to the shopping list"


class CompleteTaskArgs(FunctionArgs):
    task_name: str = Field(..., min_length=1)
    employee_name: Optional[str] = None

    def describe(self) -> str:
        return f"Complete task {self.task_name}"


class AddQuickTaskArgs(FunctionArgs):
    task_name: str = Field(..., min_length=1)
    employee_name: Optional[str] = None
    category: str = "general"

    def describe(self) -> str:
        return f"Add task {self.task_name}"


class _UpdateArgs(FunctionArgs):
    """Partial update: at least one field besides the id must be given."""

    @model_validator(mode="after")
    def require_changes(self):
        if not self.changes():
            raise ValueError("At least one field to update is required")
        return self

    def changes(self) -> dict:
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if not key.endswith("_id")
        }


class CreateRecipeArgs(FunctionArgs):
    name: str = Field(..., min_length=1)
    ingredients: list[str] = Field(default_factory=list)
    instructions: str = ""
    servings: int = Field(default=2, ge=1)
    prep_minutes: Optional[int] = Field(default=None, ge=0)

    def describe(self) -> str:
        return f"Create recipe {self.name}"


class UpdateRecipeArgs(_UpdateArgs):
    recipe_id: str = Field(..., min_length=1)
    name: Optional[str] = Field(default=None, min_length=1)
    ingredients: Optional[list[str]] = None
    instructions: Optional[str] = None
    servings: Optional[int] = Field(default=None, ge=1)
    prep_minutes: Optional[int] = Field(default=None, ge=0)


class DeleteRecipeArgs(FunctionArgs):
    recipe_id: str = Field(..., min_length=1)


class CreateSpaceArgs(FunctionArgs):
    name: str = Field(..., min_length=1)
    space_type: str = "room"
    floor: Optional[int] = None
    notes: str = ""

    def describe(self) -> str:
        return f"Create space {self.name}"


class UpdateSpaceArgs(_UpdateArgs):
    space_id: str = Field(..., min_length=1)
    name: Optional[str] = Field(default=None, min_length=1)
    space_type: Optional[str] = None
    floor: Optional[int] = None
    notes: Optional[str] = None


class DeleteSpaceArgs(FunctionArgs):
    space_id: str = Field(..., min_length=1)


class CreateEmployeeArgs(FunctionArgs):
    name: str = Field(..., min_length=1)
    role: str = "general"
    phone: Optional[str] = None

    def describe(self) -> str:
        return f"Add employee {self.name}"


class UpdateEmployeeArgs(_UpdateArgs):
    employee_id: str = Field(..., min_length=1)
    name: Optional[str] = Field(default=None, min_length=1)
    role: Optional[str] = None
    phone: Optional[str] = None
    active: Optional[bool] = None


class DeleteEmployeeArgs(FunctionArgs):
    employee_id: str = Field(..., min_length=1)
