"""Tests for the household function registry and handlers."""

import pytest

from household_ai.exceptions import FunctionExecutionError, InvalidArgumentsError
from household_ai.functions import (
    FunctionContext,
    FunctionRegistry,
    default_registry,
    find_by_name,
    household_functions,
)
from household_ai.functions.schemas import DAY_MENU, INVENTORY, RECIPES, SHOPPING_LIST, TASKS

from tests.conftest import HOUSEHOLD


async def run(registry, data_store, clock, name, arguments):
    """Locate and run one function, the way the executor does."""
    function = registry.require(name)
    args = function.parse_arguments(arguments)
    ctx = FunctionContext(HOUSEHOLD, data_store, clock.now())
    target = await function.locate(ctx, args)
    result = await function.run(ctx, args, target)
    return target, result


class TestRegistry:
    """Tests for FunctionRegistry."""

    def test_duplicate_names_rejected(self):
        """Two functions cannot share a name."""
        functions = household_functions()
        with pytest.raises(ValueError):
            FunctionRegistry(functions + functions[:1])

    def test_unknown_function_rejected_on_require(self, registry):
        """Executing an unknown function is an argument error."""
        with pytest.raises(InvalidArgumentsError):
            registry.require("launch_rockets")

    def test_default_registry_is_built_once(self):
        """The default registry is shared."""
        assert default_registry() is default_registry()
        assert len(default_registry()) == 15

    def test_invalid_arguments(self, registry):
        """Schema violations list the offending fields."""
        function = registry.require("swap_menu_recipe")
        with pytest.raises(InvalidArgumentsError) as exc:
            function.parse_arguments({"day_number": 13, "meal_type": "brunch", "new_recipe_name": "Soup"})
        fields = {e["field"] for e in exc.value.details["errors"]}
        assert fields == {"day_number", "meal_type"}

    def test_unknown_argument_keys_rejected(self, registry):
        """Extra keys are not silently ignored."""
        with pytest.raises(InvalidArgumentsError):
            registry.require("mark_shopping_item").parse_arguments({"item_name": "Milk", "colour": "red"})

    def test_update_requires_a_change(self, registry):
        """An update with nothing to change is invalid."""
        with pytest.raises(InvalidArgumentsError):
            registry.require("update_recipe").parse_arguments({"recipe_id": "rec-pasta"})


class TestFindByName:
    """Tests for name lookups."""

    def test_exact_match_wins(self):
        """An exact match beats an earlier partial one."""
        records = [{"name": "Brown Rice"}, {"name": "Rice"}]
        assert find_by_name(records, "name", "rice") == {"name": "Rice"}

    def test_partial_match(self):
        """Substring matches are case-insensitive."""
        records = [{"name": "Whole Milk"}]
        assert find_by_name(records, "name", "MILK") == {"name": "Whole Milk"}

    def test_no_match(self):
        """Nothing matches → None."""
        assert find_by_name([{"name": "Eggs"}], "name", "flour") is None


class TestHouseholdFunctions:
    """Tests for individual household functions."""

    @pytest.mark.asyncio
    async def test_update_inventory_set(self, registry, data_store, clock, household):
        """'set' replaces the quantity."""
        target, result = await run(registry, data_store, clock, "update_inventory",
                                   {"item_name": "rice", "quantity": 5})
        assert target.current["quantity"] == 2.0
        record = await data_store.get_record(HOUSEHOLD, INVENTORY, "inv-rice")
        assert record["quantity"] == 5
        assert result["previous_quantity"] == 2.0

    @pytest.mark.asyncio
    async def test_update_inventory_subtract_clamps_at_zero(self, registry, data_store, clock, household):
        """Inventory never goes negative."""
        await run(registry, data_store, clock, "update_inventory",
                  {"item_name": "Eggs", "quantity": 20, "action": "subtract"})
        record = await data_store.get_record(HOUSEHOLD, INVENTORY, "inv-eggs")
        assert record["quantity"] == 0

    @pytest.mark.asyncio
    async def test_update_inventory_missing_item(self, registry, data_store, clock, household):
        """Unknown items fail while locating."""
        with pytest.raises(FunctionExecutionError):
            await run(registry, data_store, clock, "update_inventory",
                      {"item_name": "Saffron", "quantity": 1})

    @pytest.mark.asyncio
    async def test_swap_menu_recipe(self, registry, data_store, clock, household):
        """The meal slot points at the matched recipe."""
        _, result = await run(registry, data_store, clock, "swap_menu_recipe",
                              {"day_number": 1, "meal_type": "lunch", "new_recipe_name": "carbonara"})
        menu = await data_store.get_record(HOUSEHOLD, DAY_MENU, "menu-1")
        assert menu["lunch"] == {"recipe_id": "rec-pasta", "recipe_name": "Pasta Carbonara"}
        assert result["previous_recipe"] == "Chicken Soup"

    @pytest.mark.asyncio
    async def test_swap_menu_recipe_creates_missing_day(self, registry, data_store, clock, household):
        """A day without a menu gets one; the target is a new record."""
        target, _ = await run(registry, data_store, clock, "swap_menu_recipe",
                              {"day_number": 4, "meal_type": "dinner", "new_recipe_name": "Chicken Soup"})
        assert target.current is None
        menu = await data_store.get_record(HOUSEHOLD, DAY_MENU, target.record_id)
        assert menu["day_number"] == 4
        assert menu["dinner"]["recipe_id"] == "rec-soup"

    @pytest.mark.asyncio
    async def test_swap_menu_recipe_unknown_recipe(self, registry, data_store, clock, household):
        """An unknown recipe fails without writing."""
        with pytest.raises(FunctionExecutionError):
            await run(registry, data_store, clock, "swap_menu_recipe",
                      {"day_number": 1, "meal_type": "lunch", "new_recipe_name": "Sushi"})
        menu = await data_store.get_record(HOUSEHOLD, DAY_MENU, "menu-1")
        assert menu["lunch"]["recipe_id"] == "rec-soup"

    @pytest.mark.asyncio
    async def test_mark_shopping_item(self, registry, data_store, clock, household):
        """Checking off records when."""
        await run(registry, data_store, clock, "mark_shopping_item", {"item_name": "milk"})
        item = await data_store.get_record(HOUSEHOLD, SHOPPING_LIST, "shop-milk")
        assert item["checked"] is True
        assert item["checked_at"] is not None

    @pytest.mark.asyncio
    async def test_add_existing_item_unchecks_it(self, registry, data_store, clock, household):
        """Adding something already listed puts it back on the list."""
        target, _ = await run(registry, data_store, clock, "add_to_shopping_list", {"item_name": "Bread"})
        assert target.record_id == "shop-bread"
        item = await data_store.get_record(HOUSEHOLD, SHOPPING_LIST, "shop-bread")
        assert item["checked"] is False

    @pytest.mark.asyncio
    async def test_add_new_item(self, registry, data_store, clock, household):
        """New items are created."""
        target, _ = await run(registry, data_store, clock, "add_to_shopping_list",
                              {"item_name": "Coffee", "quantity": "500 g"})
        assert target.current is None
        item = await data_store.get_record(HOUSEHOLD, SHOPPING_LIST, target.record_id)
        assert item["name"] == "Coffee"
        assert item["quantity"] == "500 g"

    @pytest.mark.asyncio
    async def test_complete_task(self, registry, data_store, clock, household):
        """Today's matching task is completed."""
        await run(registry, data_store, clock, "complete_task",
                  {"task_name": "kitchen", "employee_name": "Maria"})
        task = await data_store.get_record(HOUSEHOLD, TASKS, "task-kitchen")
        assert task["status"] == "completed"
        assert task["completed_by"] == "Maria"

    @pytest.mark.asyncio
    async def test_complete_task_only_today(self, registry, data_store, clock, household):
        """Tasks of other days are not matched."""
        clock.advance(24 * 3600)
        with pytest.raises(FunctionExecutionError):
            await run(registry, data_store, clock, "complete_task", {"task_name": "kitchen"})

    @pytest.mark.asyncio
    async def test_add_quick_task_assigns_employee(self, registry, data_store, clock, household):
        """Known employees are linked by id."""
        target, result = await run(registry, data_store, clock, "add_quick_task",
                                   {"task_name": "Water plants", "employee_name": "maria"})
        task = await data_store.get_record(HOUSEHOLD, TASKS, target.record_id)
        assert task["employee_id"] == "emp-maria"
        assert task["due_date"] == clock.now().date().isoformat()
        assert "Maria" in result["message"]

    @pytest.mark.asyncio
    async def test_update_recipe_partial(self, registry, data_store, clock, household):
        """Only the given fields change."""
        _, result = await run(registry, data_store, clock, "update_recipe",
                              {"recipe_id": "rec-pasta", "servings": 2})
        recipe = await data_store.get_record(HOUSEHOLD, RECIPES, "rec-pasta")
        assert recipe["servings"] == 2
        assert recipe["name"] == "Pasta Carbonara"
        assert result["changed_fields"] == ["servings"]

    @pytest.mark.asyncio
    async def test_delete_recipe(self, registry, data_store, clock, household):
        """Deleting removes the record."""
        target, _ = await run(registry, data_store, clock, "delete_recipe", {"recipe_id": "rec-soup"})
        assert target.current["name"] == "Chicken Soup"
        assert await data_store.get_record(HOUSEHOLD, RECIPES, "rec-soup") is None

    @pytest.mark.asyncio
    async def test_delete_missing_recipe(self, registry, data_store, clock, household):
        """Deleting something that isn't there fails."""
        with pytest.raises(FunctionExecutionError):
            await run(registry, data_store, clock, "delete_recipe", {"recipe_id": "nope"})

    @pytest.mark.asyncio
    async def test_create_space(self, registry, data_store, clock, household):
        """Creations get a fresh id."""
        target, _ = await run(registry, data_store, clock, "create_space",
                              {"name": "Garage", "space_type": "outdoor"})
        space = await data_store.get_record(HOUSEHOLD, "spaces", target.record_id)
        assert space["name"] == "Garage"
        assert space["id"] == target.record_id
