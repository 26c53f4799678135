"""
Shared fixtures.

Everything runs on in-memory storage with a manually advanced clock;
no test touches the network or the real time.
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from household_ai.audit import AuditLogger
from household_ai.config import EngineSettings
from household_ai.execution import ProposalExecutor, RollbackEngine
from household_ai.functions import default_registry
from household_ai.functions.schemas import (
    DAY_MENU,
    EMPLOYEES,
    INVENTORY,
    RECIPES,
    SHOPPING_LIST,
    TASKS,
)
from household_ai.orchestrator import AICommandFlow
from household_ai.proposals import ProposalStore
from household_ai.risk import RiskClassifier
from household_ai.services.storage import (
    InMemoryAuditStorage,
    InMemoryHouseholdDataStore,
    InMemoryProposalStorage,
    InMemoryTrustStorage,
)
from household_ai.trust import TrustEvaluator


HOUSEHOLD = "house-1"
OTHER_HOUSEHOLD = "house-2"
SESSION = "session-1"
USER = "user-1"


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime):
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> datetime:
        self._now += timedelta(seconds=seconds)
        return self._now


@pytest.fixture
def clock():
    return ManualClock(datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def engine_settings():
    return EngineSettings(
        proposal_ttl_seconds=600,
        undo_window_seconds=60,
        default_trust_level=1,
        adaptive_trust_enabled=True,
    )


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def proposal_storage():
    return InMemoryProposalStorage()


@pytest.fixture
def trust_storage():
    return InMemoryTrustStorage()


@pytest.fixture
def data_store():
    return InMemoryHouseholdDataStore()


@pytest.fixture
def classifier(registry):
    return RiskClassifier(registry)


@pytest.fixture
def audit(audit_storage, clock):
    return AuditLogger(audit_storage, clock)


@pytest.fixture
def trust(trust_storage, classifier, engine_settings, clock):
    return TrustEvaluator(trust_storage, classifier, engine_settings, clock)


@pytest.fixture
def proposals(proposal_storage, engine_settings, clock):
    return ProposalStore(proposal_storage, engine_settings, clock)


@pytest.fixture
def executor(data_store, audit, trust, proposals, registry, clock):
    return ProposalExecutor(data_store, audit, trust, proposals, registry, clock)


@pytest.fixture
def rollback(data_store, audit, trust, proposals, engine_settings, clock):
    return RollbackEngine(data_store, audit, trust, proposals, engine_settings, clock)


@pytest.fixture
def flow(data_store, classifier, trust, proposals, executor, rollback, audit, registry, clock):
    return AICommandFlow(
        data_store=data_store,
        classifier=classifier,
        trust=trust,
        proposals=proposals,
        executor=executor,
        rollback=rollback,
        audit=audit,
        registry=registry,
        clock=clock,
    )


@pytest_asyncio.fixture
async def household(data_store, clock):
    """A household with a little of everything."""
    today = clock.now().date().isoformat()
    records = {
        INVENTORY: [
            {"id": "inv-rice", "name": "Rice", "quantity": 2.0, "unit": "kg"},
            {"id": "inv-eggs", "name": "Eggs", "quantity": 12.0, "unit": "unit"},
        ],
        SHOPPING_LIST: [
            {"id": "shop-milk", "name": "Milk", "quantity": "2 l", "checked": False},
            {"id": "shop-bread", "name": "Bread", "quantity": None, "checked": True},
        ],
        RECIPES: [
            {"id": "rec-pasta", "name": "Pasta Carbonara", "ingredients": ["pasta", "eggs"], "servings": 4},
            {"id": "rec-soup", "name": "Chicken Soup", "ingredients": ["chicken"], "servings": 6},
        ],
        DAY_MENU: [
            {
                "id": "menu-1",
                "day_number": 1,
                "lunch": {"recipe_id": "rec-soup", "recipe_name": "Chicken Soup"},
            },
        ],
        TASKS: [
            {"id": "task-kitchen", "task_name": "Clean kitchen", "due_date": today, "status": "pending"},
        ],
        EMPLOYEES: [
            {"id": "emp-maria", "name": "Maria", "role": "cook", "active": True},
        ],
    }
    for collection, items in records.items():
        for item in items:
            await data_store.put_record(HOUSEHOLD, collection, item["id"], item)
    return HOUSEHOLD
