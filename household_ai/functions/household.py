"""
Household Functions

The operations the assistant can invoke on a household: menu, pantry,
shopping list, tasks, recipes, spaces and staff.

Name lookups are case-insensitive: an exact match wins, otherwise the
first record whose name contains the query.
"""

from functools import lru_cache
from typing import Any, Optional

from household_ai.exceptions import FunctionExecutionError
from household_ai.functions.registry import (
    FunctionContext,
    FunctionRegistry,
    HouseholdFunction,
    Mutation,
    RecordTarget,
)
from household_ai.functions.schemas import (
    DAY_MENU,
    EMPLOYEES,
    INVENTORY,
    RECIPES,
    SHOPPING_LIST,
    SPACES,
    TASKS,
    AddQuickTaskArgs,
    AddToShoppingListArgs,
    CompleteTaskArgs,
    CreateEmployeeArgs,
    CreateRecipeArgs,
    CreateSpaceArgs,
    DayMenu,
    DeleteEmployeeArgs,
    DeleteRecipeArgs,
    DeleteSpaceArgs,
    Employee,
    HouseholdTask,
    InventoryAction,
    InventoryItem,
    MarkShoppingItemArgs,
    MenuSlot,
    Recipe,
    ShoppingListItem,
    Space,
    SwapMenuRecipeArgs,
    TaskStatus,
    UpdateEmployeeArgs,
    UpdateInventoryArgs,
    UpdateRecipeArgs,
    UpdateSpaceArgs,
)
from household_ai.models.risk import FunctionConfig, RiskLevel


def find_by_name(records: list[dict[str, Any]], field: str, query: str) -> Optional[dict[str, Any]]:
    """Exact case-insensitive match first, then first substring match."""
    needle = query.strip().lower()
    partial = None
    for record in records:
        value = str(record.get(field, "")).lower()
        if value == needle:
            return record
        if partial is None and needle in value:
            partial = record
    return partial


# =============================================================================
# MENU
# =============================================================================

async def _locate_day_menu(ctx: FunctionContext, args: SwapMenuRecipeArgs) -> RecordTarget:
    for record in await ctx.records(DAY_MENU):
        if record.get("day_number") == args.day_number:
            return RecordTarget(collection=DAY_MENU, record_id=record["id"], current=record)
    return RecordTarget.new(DAY_MENU)


async def _swap_menu_recipe(ctx: FunctionContext, args: SwapMenuRecipeArgs, target: RecordTarget) -> Mutation:
    recipe = find_by_name(await ctx.records(RECIPES), "name", args.new_recipe_name)
    if recipe is None:
        raise FunctionExecutionError(
            f'Recipe "{args.new_recipe_name}" not found',
            function_name="swap_menu_recipe",
        )

    if target.current:
        menu = DayMenu.model_validate(target.current)
    else:
        menu = DayMenu(id=target.record_id, day_number=args.day_number)

    meal = args.meal_type.value
    previous = getattr(menu, meal)
    menu = menu.model_copy(update={
        meal: MenuSlot(recipe_id=recipe["id"], recipe_name=recipe["name"]),
        "updated_at": ctx.now,
    })

    return Mutation(
        data=menu.model_dump(mode="json"),
        result={
            "message": f'Day {args.day_number} {meal} changed to "{recipe["name"]}"',
            "previous_recipe": previous.recipe_name if previous else None,
        },
    )


# =============================================================================
# PANTRY & SHOPPING
# =============================================================================

async def _locate_inventory_item(ctx: FunctionContext, args: UpdateInventoryArgs) -> RecordTarget:
    record = find_by_name(await ctx.records(INVENTORY), "name", args.item_name)
    if record is None:
        raise FunctionExecutionError(
            f'"{args.item_name}" not found in the inventory',
            function_name="update_inventory",
        )
    return RecordTarget(collection=INVENTORY, record_id=record["id"], current=record)


async def _update_inventory(ctx: FunctionContext, args: UpdateInventoryArgs, target: RecordTarget) -> Mutation:
    item = InventoryItem.model_validate(target.current)

    if args.action == InventoryAction.ADD:
        quantity = item.quantity + args.quantity
    elif args.action == InventoryAction.SUBTRACT:
        quantity = max(0.0, item.quantity - args.quantity)
    else:
        quantity = args.quantity

    updated = item.model_copy(update={"quantity": quantity, "updated_at": ctx.now})
    return Mutation(
        data=updated.model_dump(mode="json"),
        result={
            "message": f"{item.name}: {quantity:g} {item.unit}",
            "previous_quantity": item.quantity,
            "quantity": quantity,
        },
    )


async def _locate_shopping_item(ctx: FunctionContext, args: MarkShoppingItemArgs) -> RecordTarget:
    record = find_by_name(await ctx.records(SHOPPING_LIST), "name", args.item_name)
    if record is None:
        raise FunctionExecutionError(
            f'"{args.item_name}" is not on the shopping list',
            function_name="mark_shopping_item",
        )
    return RecordTarget(collection=SHOPPING_LIST, record_id=record["id"], current=record)


async def _mark_shopping_item(ctx: FunctionContext, args: MarkShoppingItemArgs, target: RecordTarget) -> Mutation:
    item = ShoppingListItem.model_validate(target.current)
    updated = item.model_copy(update={
        "checked": args.checked,
        "checked_at": ctx.now if args.checked else None,
        "updated_at": ctx.now,
    })
    state = "checked off" if args.checked else "unchecked"
    return Mutation(
        data=updated.model_dump(mode="json"),
        result={"message": f'"{item.name}" {state}'},
    )


async def _locate_shopping_entry(ctx: FunctionContext, args: AddToShoppingListArgs) -> RecordTarget:
    record = find_by_name(await ctx.records(SHOPPING_LIST), "name", args.item_name)
    if record is None:
        return RecordTarget.new(SHOPPING_LIST)
    return RecordTarget(collection=SHOPPING_LIST, record_id=record["id"], current=record)


async def _add_to_shopping_list(ctx: FunctionContext, args: AddToShoppingListArgs, target: RecordTarget) -> Mutation:
    if target.current:
        # Already listed: put it back on the list
        item = ShoppingListItem.model_validate(target.current)
        update: dict[str, Any] = {"checked": False, "checked_at": None, "updated_at": ctx.now}
        if args.quantity:
            update["quantity"] = args.quantity
        item = item.model_copy(update=update)
        message = f'"{item.name}" added back to the shopping list'
    else:
        item = ShoppingListItem(
            id=target.record_id,
            name=args.item_name,
            quantity=args.quantity,
            updated_at=ctx.now,
        )
        message = f'"{item.name}" added to the shopping list'

    return Mutation(data=item.model_dump(mode="json"), result={"message": message})


# =============================================================================
# TASKS
# =============================================================================

async def _locate_todays_task(ctx: FunctionContext, args: CompleteTaskArgs) -> RecordTarget:
    today = ctx.now.date().isoformat()
    todays = [t for t in await ctx.records(TASKS) if t.get("due_date") == today]
    pending = [t for t in todays if t.get("status") == TaskStatus.PENDING.value]

    record = find_by_name(pending, "task_name", args.task_name) or find_by_name(
        todays, "task_name", args.task_name
    )
    if record is None:
        raise FunctionExecutionError(
            f'Task "{args.task_name}" not found for today',
            function_name="complete_task",
        )
    return RecordTarget(collection=TASKS, record_id=record["id"], current=record)


async def _complete_task(ctx: FunctionContext, args: CompleteTaskArgs, target: RecordTarget) -> Mutation:
    task = HouseholdTask.model_validate(target.current)
    updated = task.model_copy(update={
        "status": TaskStatus.COMPLETED,
        "completed_at": ctx.now,
        "completed_by": args.employee_name,
        "updated_at": ctx.now,
    })
    return Mutation(
        data=updated.model_dump(mode="json"),
        result={"message": f'Task "{task.task_name}" completed'},
    )


async def _locate_new_task(ctx: FunctionContext, args: AddQuickTaskArgs) -> RecordTarget:
    return RecordTarget.new(TASKS)


async def _add_quick_task(ctx: FunctionContext, args: AddQuickTaskArgs, target: RecordTarget) -> Mutation:
    employee = None
    if args.employee_name:
        employee = find_by_name(await ctx.records(EMPLOYEES), "name", args.employee_name)

    task = HouseholdTask(
        id=target.record_id,
        task_name=args.task_name,
        due_date=ctx.now.date(),
        category=args.category,
        employee_id=employee["id"] if employee else None,
        employee_name=employee["name"] if employee else args.employee_name,
        updated_at=ctx.now,
    )

    message = f'Task "{task.task_name}" created for today'
    if task.employee_name:
        message += f" (assigned to {task.employee_name})"
    return Mutation(data=task.model_dump(mode="json"), result={"message": message})


# =============================================================================
# RECIPES, SPACES, STAFF (plain create / update / delete)
# =============================================================================

def _locate_new(collection: str):
    async def locate(ctx: FunctionContext, args) -> RecordTarget:
        return RecordTarget.new(collection)
    return locate


def _locate_by_id(collection: str, id_field: str, function_name: str):
    async def locate(ctx: FunctionContext, args) -> RecordTarget:
        record_id = getattr(args, id_field)
        current = await ctx.record(collection, record_id)
        if current is None:
            raise FunctionExecutionError(
                f"{collection} record not found: {record_id}",
                function_name=function_name,
            )
        return RecordTarget(collection=collection, record_id=record_id, current=current)
    return locate


def _apply_create(model, label: str):
    async def apply(ctx: FunctionContext, args, target: RecordTarget) -> Mutation:
        record = model(id=target.record_id, updated_at=ctx.now, **args.model_dump())
        return Mutation(
            data=record.model_dump(mode="json"),
            result={"message": f'{label} "{record.name}" created'},
        )
    return apply


def _apply_update(model, label: str):
    async def apply(ctx: FunctionContext, args, target: RecordTarget) -> Mutation:
        record = model.model_validate({**target.current, **args.changes(), "updated_at": ctx.now})
        return Mutation(
            data=record.model_dump(mode="json"),
            result={
                "message": f'{label} "{record.name}" updated',
                "changed_fields": sorted(args.changes()),
            },
        )
    return apply


def _apply_delete(label: str):
    async def apply(ctx: FunctionContext, args, target: RecordTarget) -> Mutation:
        name = target.current.get("name", target.record_id)
        return Mutation(data=None, result={"message": f'{label} "{name}" deleted'})
    return apply


# =============================================================================
# REGISTRY
# =============================================================================

def _function(name: str, risk: RiskLevel, reversible: bool, collection: str,
              description: str, description_es: str, args_model, locate, apply,
              requires_confirmation_above: RiskLevel = RiskLevel.CRITICAL) -> HouseholdFunction:
    config = FunctionConfig(
        name=name,
        risk_level=risk,
        is_reversible=reversible,
        requires_confirmation_above=requires_confirmation_above,
        description=description,
        description_es=description_es,
        collection=collection,
    )
    return HouseholdFunction(config, args_model, locate, apply)


def household_functions() -> list[HouseholdFunction]:
    """Every function the assistant may invoke, with its fixed risk."""
    low, medium, high, critical = RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL
    return [
        _function(
            "swap_menu_recipe", medium, True, DAY_MENU,
            "Change a recipe in the menu", "Cambiar receta del menú",
            SwapMenuRecipeArgs, _locate_day_menu, _swap_menu_recipe,
        ),
        _function(
            "update_inventory", medium, True, INVENTORY,
            "Update pantry inventory", "Actualizar inventario",
            UpdateInventoryArgs, _locate_inventory_item, _update_inventory,
        ),
        _function(
            "mark_shopping_item", low, True, SHOPPING_LIST,
            "Check off a shopping list item", "Marcar item de la lista de compras",
            MarkShoppingItemArgs, _locate_shopping_item, _mark_shopping_item,
        ),
        _function(
            "add_to_shopping_list", low, True, SHOPPING_LIST,
            "Add an item to the shopping list", "Agregar item a la lista de compras",
            AddToShoppingListArgs, _locate_shopping_entry, _add_to_shopping_list,
        ),
        _function(
            "complete_task", low, True, TASKS,
            "Mark a task as completed", "Marcar tarea como completada",
            CompleteTaskArgs, _locate_todays_task, _complete_task,
        ),
        _function(
            "add_quick_task", low, True, TASKS,
            "Add a task for today", "Crear tarea para hoy",
            AddQuickTaskArgs, _locate_new_task, _add_quick_task,
        ),
        _function(
            "create_recipe", medium, True, RECIPES,
            "Create a recipe", "Crear receta",
            CreateRecipeArgs, _locate_new(RECIPES), _apply_create(Recipe, "Recipe"),
        ),
        _function(
            "update_recipe", medium, True, RECIPES,
            "Edit a recipe", "Editar receta",
            UpdateRecipeArgs, _locate_by_id(RECIPES, "recipe_id", "update_recipe"),
            _apply_update(Recipe, "Recipe"),
        ),
        _function(
            "delete_recipe", high, True, RECIPES,
            "Delete a recipe", "Eliminar receta",
            DeleteRecipeArgs, _locate_by_id(RECIPES, "recipe_id", "delete_recipe"),
            _apply_delete("Recipe"), requires_confirmation_above=high,
        ),
        _function(
            "create_space", medium, True, SPACES,
            "Create a home space", "Crear espacio del hogar",
            CreateSpaceArgs, _locate_new(SPACES), _apply_create(Space, "Space"),
        ),
        _function(
            "update_space", medium, True, SPACES,
            "Edit a home space", "Editar espacio del hogar",
            UpdateSpaceArgs, _locate_by_id(SPACES, "space_id", "update_space"),
            _apply_update(Space, "Space"),
        ),
        _function(
            "delete_space", high, True, SPACES,
            "Delete a home space", "Eliminar espacio del hogar",
            DeleteSpaceArgs, _locate_by_id(SPACES, "space_id", "delete_space"),
            _apply_delete("Space"), requires_confirmation_above=high,
        ),
        _function(
            "create_employee", high, True, EMPLOYEES,
            "Add a household employee", "Agregar empleado",
            CreateEmployeeArgs, _locate_new(EMPLOYEES), _apply_create(Employee, "Employee"),
        ),
        _function(
            "update_employee", high, True, EMPLOYEES,
            "Edit a household employee", "Editar empleado",
            UpdateEmployeeArgs, _locate_by_id(EMPLOYEES, "employee_id", "update_employee"),
            _apply_update(Employee, "Employee"),
        ),
        _function(
            "delete_employee", critical, False, EMPLOYEES,
            "Remove a household employee", "Eliminar empleado",
            DeleteEmployeeArgs, _locate_by_id(EMPLOYEES, "employee_id", "delete_employee"),
            _apply_delete("Employee"),
        ),
    ]


@lru_cache()
def default_registry() -> FunctionRegistry:
    """The household function registry (built once)."""
    return FunctionRegistry(household_functions())
