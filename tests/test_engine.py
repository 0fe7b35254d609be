"""Tests for the eligibility engine orchestration.

The engine runs against in-memory collaborators: a catalog returning fixed
specs, a static fact provider, and a state store whose row lock is an
asyncio.Lock held until the fake transaction ends, the way
SELECT ... FOR UPDATE holds it until COMMIT.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from src.eligibility.activation import ActivationTrigger
from src.eligibility.audit import AuditLogger
from src.eligibility.engine import EligibilityEngine, build_overview
from src.eligibility.errors import ActivationError, ActivationFailedError, UnknownTargetError
from src.eligibility.scorer import EligibilityScorer
from src.eligibility.state import EligibilityStateStore, StateChange
from src.models.condition import ConditionSpec
from src.models.eligibility_status import EligibilityStatus
from src.models.enums import ActionTaken, NotificationType, TargetType, Transition, TriggerEvent
from src.models.evaluation_log import EvaluationLog
from src.models.notification import Notification
from src.notifications.dispatcher import NotificationDispatcher
from src.schemas.eligibility import FactSnapshot
from src.schemas.events import EventType

# ── In-memory collaborators ──────────────────────────────────────────


class _Transaction:
    def __init__(self, session: FakeSession) -> None:
        self._session = session

    async def __aenter__(self) -> FakeSession:
        return self._session

    async def __aexit__(self, *exc: Any) -> bool:
        # COMMIT / ROLLBACK releases the row locks
        while self._session.held:
            self._session.held.pop().release()
        return False


class _Savepoint:
    def __init__(self, session: FakeSession) -> None:
        self._session = session
        self._mark = 0

    async def __aenter__(self) -> None:
        self._mark = len(self._session.sink)

    async def __aexit__(self, *exc: Any) -> bool:
        error = self._session.savepoint_error
        if error is not None:
            # ROLLBACK TO SAVEPOINT discards what was added inside it
            del self._session.sink[self._mark:]
            raise error
        return False


class FakeSession:
    def __init__(self, sink: list[Any], savepoint_error: Exception | None = None) -> None:
        self.sink = sink
        self.held: list[asyncio.Lock] = []
        self.savepoint_error = savepoint_error

    def add(self, obj: Any) -> None:
        self.sink.append(obj)

    async def flush(self) -> None:
        await asyncio.sleep(0)

    def begin(self) -> _Transaction:
        return _Transaction(self)

    def begin_nested(self) -> _Savepoint:
        return _Savepoint(self)

    async def __aenter__(self) -> FakeSession:
        return self

    async def __aexit__(self, *exc: Any) -> bool:
        return False


class InMemoryStateStore(EligibilityStateStore):
    """Real apply() logic over a dict of rows with per-row asyncio locks."""

    def __init__(self) -> None:
        self.rows: dict[tuple[int, str, str], EligibilityStatus] = {}
        self.locks: dict[tuple[int, str, str], asyncio.Lock] = defaultdict(asyncio.Lock)

    async def lock_row(self, db, customer_id, target_type, target_code):
        key = (customer_id, target_type.value, target_code)
        lock = self.locks[key]
        await lock.acquire()
        db.held.append(lock)
        if key in self.rows:
            return self.rows[key], False
        row = EligibilityStatus(
            customer_id=customer_id,
            target_type=target_type.value,
            target_code=target_code,
            is_eligible=False,
            is_activated=False,
            eligibility_score=Decimal("0"),
            progress_percentage=Decimal("0"),
            last_progress_milestone=0,
            auto_activate_when_eligible=True,
        )
        self.rows[key] = row
        return row, True

    async def mark_activated(self, db, status, now):
        if status.is_activated:
            return False
        status.is_activated = True
        status.activated_at = now
        return True

    async def claim_notification_slot(self, db, status, cooldown, now):
        if status.last_notified_at is not None and status.last_notified_at >= now - cooldown:
            return False
        status.last_notified_at = now
        return True

    async def list_for_customer(self, db, customer_id):
        return [row for (cid, _, _), row in sorted(self.rows.items()) if cid == customer_id]


class FakeCatalog:
    def __init__(self, specs: list[ConditionSpec], failing: set[str] | None = None) -> None:
        self.specs = specs
        self.failing = failing or set()

    async def active_conditions(self, db, target_type, target_code):
        if target_code in self.failing:
            raise RuntimeError(f"catalog unavailable for {target_code}")
        return [s for s in self.specs if s.target_code == target_code]


class StaticFacts:
    def __init__(self, facts: FactSnapshot) -> None:
        self.facts = facts

    async def snapshot(self, customer_id: int) -> FactSnapshot:
        return self.facts.model_copy(update={"customer_id": customer_id})


def spec(target_code: str, key: str, payload: dict[str, Any], weight: int, target_type: str = "SERVICE") -> ConditionSpec:
    return ConditionSpec(
        target_type=target_type,
        target_code=target_code,
        condition_type="ELIGIBILITY",
        condition_key=key,
        condition_label=key,
        operator="GREATER_THAN_OR_EQUAL",
        required_value=payload,
        weight=weight,
        is_mandatory=True,
        is_active=True,
        display_order=0,
        version=1,
    )


BOMBE_SPECS = [
    spec("BOMBE", "credit_score", {"score": 70}, 50),
    spec("BOMBE", "deposit_days", {"days": 10, "account": "S02"}, 50),
]


def facts(credit_score: int = 75, streak: int = 12) -> FactSnapshot:
    return FactSnapshot(customer_id=42, credit_score=credit_score, deposit_streak_days={"S02": streak})


class Harness:
    def __init__(self, snapshot: FactSnapshot, specs: list[ConditionSpec] | None = None, failing=None) -> None:
        self.sink: list[Any] = []
        self.store = InMemoryStateStore()
        self.activator = AsyncMock()
        self.savepoint_error: Exception | None = None

        async def _slow_activate(*args: Any) -> None:
            await asyncio.sleep(0)

        self.activator.activate.side_effect = _slow_activate
        self.engine = EligibilityEngine(
            catalog=FakeCatalog(specs if specs is not None else BOMBE_SPECS, failing),
            facts=StaticFacts(snapshot),
            store=self.store,
            activation=ActivationTrigger(activator=self.activator, store=self.store),
            notifier=NotificationDispatcher(store=self.store, cooldown=timedelta(minutes=60), milestone_step=25),
            audit=AuditLogger(),
            session_factory=lambda: FakeSession(self.sink, self.savepoint_error),
        )

    def of_type(self, cls: type) -> list[Any]:
        return [o for o in self.sink if isinstance(o, cls)]

    def celebrations(self) -> list[Notification]:
        return [n for n in self.of_type(Notification) if n.notification_type == NotificationType.CELEBRATION.value]


@pytest.fixture(autouse=True)
def mock_emit():
    with (
        patch("src.eligibility.engine.emit", new_callable=AsyncMock) as engine_emit,
        patch("src.eligibility.activation.emit", new_callable=AsyncMock),
        patch("src.eligibility.audit.emit", new_callable=AsyncMock),
        patch("src.notifications.dispatcher.emit", new_callable=AsyncMock),
    ):
        yield engine_emit


# ── Tests ────────────────────────────────────────────────────────────


class TestEvaluateSingleTarget:
    @pytest.mark.asyncio()
    async def test_became_eligible_activates_and_celebrates(self):
        h = Harness(facts())

        [result] = await h.engine.evaluate(42, "SERVICE", "BOMBE", TriggerEvent.DEPOSIT)

        assert result.is_eligible is True
        assert result.is_activated is True
        assert result.score == Decimal("100.00")
        assert result.action_taken == ActionTaken.ACTIVATED.value
        h.activator.activate.assert_awaited_once_with(42, TargetType.SERVICE, "BOMBE")
        assert len(h.celebrations()) == 1

        [log] = h.of_type(EvaluationLog)
        assert log.previous_eligibility is None
        assert log.new_eligibility is True
        assert log.trigger_event == "DEPOSIT"
        assert log.action_taken == "ACTIVATED"

    @pytest.mark.asyncio()
    async def test_ineligible_reports_missing(self):
        h = Harness(facts(credit_score=60))

        [result] = await h.engine.evaluate(42, TargetType.SERVICE, "BOMBE")

        assert result.is_eligible is False
        assert result.score == Decimal("50.00")
        assert [c["key"] for c in result.conditions_missing] == ["credit_score"]
        assert [c["key"] for c in result.conditions_met] == ["deposit_days"]
        h.activator.activate.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_code_alone_resolves_target(self):
        h = Harness(facts())
        [result] = await h.engine.evaluate(42, target_code="bombé")
        assert result.target_type == TargetType.SERVICE
        assert result.target_code == "BOMBE"

    @pytest.mark.asyncio()
    async def test_unknown_target_raises(self):
        h = Harness(facts())
        with pytest.raises(UnknownTargetError):
            await h.engine.evaluate(42, "SERVICE", "NOPE")

    @pytest.mark.asyncio()
    async def test_empty_condition_set_is_eligible(self):
        h = Harness(facts(), specs=[])
        [result] = await h.engine.evaluate(42, "ACCOUNT", "S01")
        assert result.is_eligible is True
        assert result.score == Decimal("100.00")
        assert result.conditions_met == []
        assert result.conditions_missing == []


class TestIdempotence:
    @pytest.mark.asyncio()
    async def test_reevaluation_changes_nothing(self):
        h = Harness(facts())

        [first] = await h.engine.evaluate(42, "SERVICE", "BOMBE")
        row = h.store.rows[(42, "SERVICE", "BOMBE")]
        eligible_since = row.eligible_since
        activated_at = row.activated_at

        [second] = await h.engine.evaluate(42, "SERVICE", "BOMBE")

        assert second.score == first.score
        assert second.is_eligible == first.is_eligible
        assert second.conditions_met == first.conditions_met
        assert second.conditions_missing == first.conditions_missing
        assert second.action_taken == ActionTaken.NONE.value
        assert row.eligible_since == eligible_since
        assert row.activated_at == activated_at
        assert len(h.celebrations()) == 1
        assert h.activator.activate.await_count == 1
        # One log row per call, regardless of change
        assert len(h.of_type(EvaluationLog)) == 2


class TestConcurrency:
    @pytest.mark.asyncio()
    async def test_scenario_d_one_activation_one_celebration(self):
        """Two racing evaluations of a false→true target activate and celebrate once."""
        h = Harness(facts())

        results = await asyncio.gather(
            h.engine.evaluate(42, "SERVICE", "BOMBE"),
            h.engine.evaluate(42, "SERVICE", "BOMBE"),
        )

        assert h.activator.activate.await_count == 1
        assert len(h.celebrations()) == 1
        actions = sorted(r[0].action_taken for r in results)
        assert actions == [ActionTaken.ACTIVATED.value, ActionTaken.NONE.value]
        assert all(r[0].is_eligible for r in results)

    @pytest.mark.asyncio()
    async def test_different_targets_do_not_serialize(self):
        specs = BOMBE_SPECS + [spec("TELEMA", "credit_score", {"score": 70}, 100)]
        h = Harness(facts(), specs=specs)

        results = await asyncio.gather(
            h.engine.evaluate(42, "SERVICE", "BOMBE"),
            h.engine.evaluate(42, "SERVICE", "TELEMA"),
        )

        assert h.activator.activate.await_count == 2
        assert len(h.celebrations()) == 2
        assert {r[0].target_code for r in results} == {"BOMBE", "TELEMA"}


class TestFailureHandling:
    @pytest.mark.asyncio()
    async def test_activation_failure_keeps_eligibility(self):
        h = Harness(facts())
        h.activator.activate.side_effect = ActivationError("timeout")

        [result] = await h.engine.evaluate(42, "SERVICE", "BOMBE")

        row = h.store.rows[(42, "SERVICE", "BOMBE")]
        assert result.is_eligible is True
        assert result.is_activated is False
        assert result.action_taken == ActionTaken.NOTIFIED.value
        assert row.is_eligible is True
        assert row.is_activated is False

    @pytest.mark.asyncio()
    async def test_required_activation_failure_raises_after_recording(self):
        h = Harness(facts())
        h.activator.activate.side_effect = ActivationError("http_503")

        with pytest.raises(ActivationFailedError):
            await h.engine.evaluate(42, "SERVICE", "BOMBE", require_activation=True)

        assert h.store.rows[(42, "SERVICE", "BOMBE")].is_eligible is True
        assert len(h.of_type(EvaluationLog)) == 1

    @pytest.mark.asyncio()
    async def test_failing_target_is_isolated(self):
        h = Harness(facts(), specs=BOMBE_SPECS, failing={"TELEMA"})

        results = await h.engine.evaluate(42, "SERVICE")

        codes = [r.target_code for r in results]
        assert "TELEMA" not in codes
        assert codes == ["BOMBE", "MOPAO", "VIMBISA", "LIKELEMBA"]

    @pytest.mark.asyncio()
    async def test_failing_target_raises_when_not_isolated(self):
        h = Harness(facts(), failing={"TELEMA"})
        with pytest.raises(RuntimeError):
            await h.engine.evaluate(42, "SERVICE", isolate_failures=False)

    @pytest.mark.asyncio()
    async def test_all_targets_evaluated_by_default(self):
        h = Harness(facts())
        results = await h.engine.evaluate(42)
        assert len(results) == 11


class TestAuditFailure:
    @pytest.mark.asyncio()
    async def test_log_write_failure_keeps_status_update(self):
        h = Harness(facts())
        h.savepoint_error = OperationalError("INSERT INTO eligibility_evaluation_logs", {}, Exception("disk full"))

        with patch("src.eligibility.audit.emit", new_callable=AsyncMock) as audit_emit:
            [result] = await h.engine.evaluate(42, "SERVICE", "BOMBE")

        row = h.store.rows[(42, "SERVICE", "BOMBE")]
        assert result.is_eligible is True
        assert result.score == Decimal("100.00")
        assert row.is_eligible is True
        assert row.eligibility_score == Decimal("100.00")
        assert row.is_activated is True
        assert h.of_type(EvaluationLog) == []

        event = audit_emit.await_args.args[0]
        assert event.event_type == EventType.SYSTEM_ERROR
        assert event.data["error"] == "evaluation_log_write_failed"
        assert event.data["target_code"] == "BOMBE"

    @pytest.mark.asyncio()
    async def test_record_returns_none_on_failure(self):
        status = EligibilityStatus(customer_id=42, target_type="SERVICE", target_code="BOMBE", is_eligible=False)
        change = StateChange(
            status=status,
            previous_eligibility=None,
            previous_score=None,
            previous_progress=Decimal("0"),
            transition=Transition.STAYED_INELIGIBLE,
            created=True,
        )
        sink: list[Any] = []
        db = FakeSession(sink, OperationalError("INSERT", {}, Exception("connection reset")))

        with patch("src.eligibility.audit.emit", new_callable=AsyncMock) as audit_emit:
            entry = await AuditLogger().record(
                db,
                change,
                [],
                EligibilityScorer().score([]),
                TriggerEvent.DAILY_CHECK,
                ActionTaken.NONE,
                None,
                datetime.now(UTC),
            )

        assert entry is None
        assert sink == []
        audit_emit.assert_awaited_once()


class TestStatus:
    @pytest.mark.asyncio()
    async def test_get_status_after_evaluation(self):
        h = Harness(facts(credit_score=60))
        await h.engine.evaluate(42, "SERVICE")

        overview = await h.engine.get_status(42)

        assert overview.accounts == []
        assert len(overview.services) == 5
        assert overview.summary.total_accounts == 6
        assert overview.summary.total_services == 5
        assert overview.summary.next_milestone is not None
        assert overview.summary.next_milestone.target_code == "BOMBE"

    def test_build_overview_counts(self):
        now = datetime(2026, 3, 1, tzinfo=UTC)

        def row(ttype: str, code: str, eligible: bool, activated: bool, progress: str) -> EligibilityStatus:
            return EligibilityStatus(
                customer_id=42,
                target_type=ttype,
                target_code=code,
                is_eligible=eligible,
                is_activated=activated,
                eligibility_score=Decimal(progress),
                progress_percentage=Decimal(progress),
                last_evaluated_at=now,
            )

        overview = build_overview([
            row("ACCOUNT", "S01", True, True, "100"),
            row("ACCOUNT", "S02", False, False, "40"),
            row("SERVICE", "BOMBE", False, False, "75"),
        ])

        summary = overview.summary
        assert summary.eligible_accounts == 1
        assert summary.activated_accounts == 1
        assert summary.eligible_services == 0
        assert summary.overall_progress == 72
        assert summary.next_milestone.target_code == "BOMBE"
        assert overview.accounts[0].target_name == "Compte Standard"

    def test_build_overview_empty(self):
        overview = build_overview([])
        assert overview.summary.overall_progress == 0
        assert overview.summary.next_milestone is None
