"""
Household Function Registry

DESIGN DECISION: Household functions are split into two steps so the
executor can snapshot before it mutates:

1. locate: find the ONE record the call will touch (or reserve a new id
   when the call creates a record). Read-only.
2. apply: compute the record's new content from the typed arguments.
   May read other records, never writes.

The registry performs the single write itself (put or delete), so every
action touches exactly one record and is atomic on its own.

The registry is built once and exposes read-only mappings; nothing can
change a function's risk metadata after startup.
"""

from datetime import datetime
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from household_ai.exceptions import InvalidArgumentsError
from household_ai.models.audit import EntitySnapshot
from household_ai.models.risk import FunctionConfig
from household_ai.services.storage.interface import HouseholdDataStore


class FunctionArgs(BaseModel):
    """Base class for typed function arguments."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    def describe(self) -> str:
        """Short human-readable description of this call, if any."""
        return ""


class RecordTarget(BaseModel):
    """The record an action is about to touch, as it is right now."""

    collection: str
    record_id: str
    current: Optional[dict[str, Any]] = None

    @classmethod
    def new(cls, collection: str) -> "RecordTarget":
        """Target for a record that does not exist yet."""
        return cls(collection=collection, record_id=str(uuid4()))

    def snapshot(self) -> EntitySnapshot:
        return EntitySnapshot(
            collection=self.collection,
            record_id=self.record_id,
            data=self.current,
        )


class Mutation(BaseModel):
    """New content for the target record (None deletes it) plus the call result."""

    data: Optional[dict[str, Any]] = None
    result: dict[str, Any] = Field(default_factory=dict)


class FunctionContext:
    """What a household function may see while it runs."""

    def __init__(self, household_id: str, store: HouseholdDataStore, now: datetime):
        self.household_id = household_id
        self.store = store
        self.now = now

    async def records(self, collection: str) -> list[dict[str, Any]]:
        return await self.store.list_records(self.household_id, collection)

    async def record(self, collection: str, record_id: str) -> Optional[dict[str, Any]]:
        return await self.store.get_record(self.household_id, collection, record_id)


Locator = Callable[[FunctionContext, Any], Awaitable[RecordTarget]]
Applier = Callable[[FunctionContext, Any, RecordTarget], Awaitable[Mutation]]


class HouseholdFunction:
    """A registered function: risk metadata, argument schema and handlers."""

    def __init__(
        self,
        config: FunctionConfig,
        args_model: type[FunctionArgs],
        locate: Locator,
        apply: Applier,
    ):
        self.config = config
        self.args_model = args_model
        self._locate = locate
        self._apply = apply

    @property
    def name(self) -> str:
        return self.config.name

    def parse_arguments(self, arguments: dict[str, Any]) -> FunctionArgs:
        """
        Validate raw arguments against the function's schema.

        Raises:
            InvalidArgumentsError: If the arguments don't match
        """
        try:
            return self.args_model.model_validate(arguments)
        except ValidationError as e:
            raise InvalidArgumentsError(
                f"Invalid arguments for {self.name}",
                function_name=self.name,
                errors=[
                    {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                    for err in e.errors()
                ],
            )

    async def locate(self, ctx: FunctionContext, args: FunctionArgs) -> RecordTarget:
        return await self._locate(ctx, args)

    async def run(self, ctx: FunctionContext, args: FunctionArgs, target: RecordTarget) -> dict[str, Any]:
        """Apply the call and write the single resulting record change."""
        mutation = await self._apply(ctx, args, target)
        if mutation.data is None:
            await ctx.store.delete_record(ctx.household_id, target.collection, target.record_id)
        else:
            await ctx.store.put_record(
                ctx.household_id, target.collection, target.record_id, mutation.data
            )
        return {"record_id": target.record_id, "collection": target.collection, **mutation.result}


async def restore_snapshot(store: HouseholdDataStore, household_id: str, snapshot: EntitySnapshot) -> None:
    """Write a snapshot back verbatim (deleting records that did not exist)."""
    if snapshot.data is None:
        await store.delete_record(household_id, snapshot.collection, snapshot.record_id)
    else:
        await store.put_record(household_id, snapshot.collection, snapshot.record_id, snapshot.data)


class FunctionRegistry:
    """Immutable name → function table."""

    def __init__(self, functions: Iterable[HouseholdFunction]):
        table: dict[str, HouseholdFunction] = {}
        for function in functions:
            if function.name in table:
                raise ValueError(f"Duplicate function name: {function.name}")
            table[function.name] = function
        self._functions: Mapping[str, HouseholdFunction] = MappingProxyType(table)
        self._configs: Mapping[str, FunctionConfig] = MappingProxyType(
            {name: function.config for name, function in table.items()}
        )

    @property
    def configs(self) -> Mapping[str, FunctionConfig]:
        return self._configs

    @property
    def names(self) -> list[str]:
        return sorted(self._functions)

    def __contains__(self, name: str) -> bool:
        return name in self._functions

    def __len__(self) -> int:
        return len(self._functions)

    def get(self, name: str) -> Optional[HouseholdFunction]:
        return self._functions.get(name)

    def require(self, name: str) -> HouseholdFunction:
        """
        Look up a function that is about to be executed.

        Raises:
            InvalidArgumentsError: If no function has this name
        """
        function = self._functions.get(name)
        if function is None:
            raise InvalidArgumentsError(
                f"Unknown function: {name}",
                function_name=name,
            )
        return function
