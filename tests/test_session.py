"""编辑器会话测试"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import asyncio
import pytest
import pytest_asyncio
from config.constants import CalculationMode, ItemStatus, SyncStatus
from core.errors import ConfigurationUnavailable, PersistenceConflict, ValidationError
from core.policy import ConfigurationService
from core.service import CalculationService
from core.session import EditorSession
from conftest import FIRST_MONDAY

CASE = "CASE-001"
INPUTS = dict(
    calculation_mode=CalculationMode.DESIRED_AMOUNT.value,
    target_amount=206.19,
    first_payment_date=FIRST_MONDAY,
)


class SlowCalculationService(CalculationService):
    """目标金额越小返回越慢，用于制造乱序结果"""

    async def calculate(self, config, totals):
        await asyncio.sleep(0.05 if config.target_amount < 250 else 0)
        return await super().calculate(config, totals)


class SlowRebalanceService(CalculationService):
    async def rebalance(self, items, total_cost):
        await asyncio.sleep(0.05)
        return await super().rebalance(items, total_cost)


@pytest.fixture
def session(store, config_service):
    return EditorSession(CASE, store, config_service)


class TestPreview:
    @pytest.mark.asyncio
    async def test_preview_and_create(self, session, totals):
        result = await session.calculate_preview(totals, **INPUTS)
        assert result.summary.number_of_periods == 78
        version = session.create_from_preview("alice")
        assert version.is_primary
        assert session.version.version_id == version.version_id
        assert len(session.grid.visible_rows()) == 78

    def test_create_requires_preview(self, session):
        with pytest.raises(ValidationError):
            session.create_from_preview()

    @pytest.mark.asyncio
    async def test_missing_policy_disables_calculator(self, store, totals):
        session = EditorSession(CASE, store, ConfigurationService(lambda: {}))
        with pytest.raises(ConfigurationUnavailable):
            await session.calculate_preview(totals, **INPUTS)
        assert session.disabled
        with pytest.raises(ConfigurationUnavailable):
            await session.calculate_preview(totals, **INPUTS)

    @pytest.mark.asyncio
    async def test_check_configuration_reenables(self, store, policy_values, totals):
        values = {}
        session = EditorSession(CASE, store, ConfigurationService(lambda: values))
        with pytest.raises(ConfigurationUnavailable):
            session.check_configuration()
        values.update(policy_values)
        assert session.check_configuration()
        assert not session.disabled
        assert await session.calculate_preview(totals, **INPUTS) is not None

    @pytest.mark.asyncio
    async def test_out_of_order_results(self, store, config_service, totals):
        session = EditorSession(CASE, store, config_service, SlowCalculationService())
        first = asyncio.ensure_future(session.calculate_preview(totals, **INPUTS))
        await asyncio.sleep(0)
        second = await session.calculate_preview(totals, **dict(INPUTS, target_amount=300))
        assert await first is None
        assert session.preview is second
        assert session.preview_config.target_amount == 300

    @pytest.mark.asyncio
    async def test_validation_error_recorded(self, session, totals):
        with pytest.raises(ValidationError):
            await session.calculate_preview(totals, **dict(INPUTS, target_amount=20))
        assert session.last_error is not None
        assert session.last_error.clamped_value == 50.0

    @pytest.mark.asyncio
    async def test_debounced_preview(self, store, config_service, totals):
        session = EditorSession(CASE, store, config_service, calc_delay_ms=10)
        session.schedule_preview(totals, **dict(INPUTS, target_amount=300))
        session.schedule_preview(totals, **INPUTS)
        await asyncio.sleep(0.05)
        await session.calc_debouncer.wait()
        assert session.preview_config.target_amount == 206.19


class TestEditing:
    @pytest_asyncio.fixture
    async def opened(self, session, totals):
        await session.calculate_preview(totals, **INPUTS)
        session.create_from_preview()
        return session

    @pytest.mark.asyncio
    async def test_save_edits_marks_changed_rows(self, opened):
        source_id = opened.version.version_id
        opened.grid.edit_cell(1, "payment_amount", "300")
        opened.grid.commit_cell(1, "payment_amount")
        version = await opened.save_edits("alice")
        assert version.supersedes_id == source_id
        assert version.is_primary
        assert opened.grid.state.changed_from_previous == {2}
        assert not opened.grid.has_pending_changes()

    @pytest.mark.asyncio
    async def test_edit_pause_rebalances_rows(self, store, config_service, totals):
        session = EditorSession(CASE, store, config_service, edit_delay_ms=10)
        await session.calculate_preview(totals, **INPUTS)
        session.create_from_preview()
        net_before = session.grid.row(1).item.net_contribution

        session.grid.edit_cell(1, "payment_amount", "1000")
        session.grid.commit_cell(1, "payment_amount")
        await asyncio.sleep(0.05)
        await session.edit_debouncer.wait()

        extra = session.grid.row(1).item.net_contribution - net_before
        assert extra > 0
        assert session.grid.row(0).item.running_balance == 13128.81
        assert session.grid.row(1).item.running_balance == pytest.approx(12957.62 - extra, abs=0.01)
        assert session.edit_summary.remaining_balance == pytest.approx(-extra, abs=0.01)
        assert session.edit_summary.over_funded

    @pytest.mark.asyncio
    async def test_save_edits_stores_refreshed_balances(self, opened, store):
        net_before = opened.grid.row(1).item.net_contribution
        opened.grid.edit_cell(1, "payment_amount", "1000")
        opened.grid.commit_cell(1, "payment_amount")
        extra = opened.grid.row(1).item.net_contribution - net_before

        version = await opened.save_edits()
        stored = store.load_version(version.version_id)
        assert stored.total_program_cost == 13300.0
        assert stored.items[1].running_balance == pytest.approx(12957.62 - extra, abs=0.01)
        assert stored.items[-1].running_balance == pytest.approx(-extra, abs=0.01)
        assert not opened.edit_debouncer.pending

    @pytest.mark.asyncio
    async def test_in_flight_rebalance_discarded(self, store, config_service, totals):
        session = EditorSession(CASE, store, config_service, SlowRebalanceService())
        await session.calculate_preview(totals, **INPUTS)
        session.create_from_preview()
        pending = asyncio.ensure_future(session.recompute_edits())
        await asyncio.sleep(0)
        session.refresh_balances()
        assert await pending is None

    @pytest.mark.asyncio
    async def test_mark_status_persists(self, opened, store):
        await opened.mark_status(0, ItemStatus.CLEARED.value)
        stored = store.load_version(opened.version.version_id)
        assert stored.items[0].status == ItemStatus.CLEARED.value
        assert not opened.tentative.has_pending(stored.items[0].item_id)

    @pytest.mark.asyncio
    async def test_mark_status_rolls_back_on_failure(self, opened, monkeypatch):
        async def conflict(item_id, status):
            raise PersistenceConflict(CASE, "PV-a", "PV-b")

        monkeypatch.setattr(opened, "_persist_status", conflict)
        with pytest.raises(PersistenceConflict):
            await opened.mark_status(0, ItemStatus.CLEARED.value)
        assert opened.grid.row(0).item.status == ItemStatus.SCHEDULED.value

    @pytest.mark.asyncio
    async def test_recalculate_opens_new_version(self, opened, totals):
        await opened.mark_status(0, ItemStatus.CLEARED.value)
        version = await opened.recalculate(totals)
        assert opened.version.version_id == version.version_id
        assert version.items[0].status == ItemStatus.CLEARED.value
        assert len(opened.versions) == 2

    @pytest.mark.asyncio
    async def test_add_row_uses_config_fees(self, opened):
        row = opened.add_row()
        assert row.item.banking_fee_portion == 35.0
        assert row.item.sequence_number == 79

    @pytest.mark.asyncio
    async def test_switching_versions_discards_preview(self, store, config_service, totals):
        session = EditorSession(CASE, store, config_service, SlowCalculationService())
        await session.calculate_preview(totals, **dict(INPUTS, target_amount=300))
        version = session.create_from_preview()
        pending = asyncio.ensure_future(session.calculate_preview(totals, **INPUTS))
        await asyncio.sleep(0)
        session.select_version(version.version_id)
        assert await pending is None

    @pytest.mark.asyncio
    async def test_version_from_other_case_rejected(self, opened, store, config_service, totals):
        other = EditorSession("CASE-002", store, config_service)
        await other.calculate_preview(totals, **INPUTS)
        foreign = other.create_from_preview()
        with pytest.raises(ValidationError):
            opened.select_version(foreign.version_id)


class TestInvalidation:
    @pytest.mark.asyncio
    async def test_reload_on_change_notice(self, session, totals):
        await session.calculate_preview(totals, **INPUTS)
        session.create_from_preview()
        assert await session.on_case_invalidated(CASE)
        assert session.version.sync_status == SyncStatus.OUT_OF_SYNC.value

    @pytest.mark.asyncio
    async def test_other_case_ignored(self, session):
        assert not await session.on_case_invalidated("CASE-999")

    @pytest.mark.asyncio
    async def test_closed_session_ignores_notices(self, session):
        session.close()
        assert not await session.on_case_invalidated(CASE)
