"""表格编辑状态机测试"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import asyncio
from datetime import date, timedelta
import pytest
from config.constants import ItemStatus, VersionStatus
from core.calculator import generate_schedule
from core.errors import ValidationError
from core.grid import CellRef, InteractiveGridController, row_defaults_for
from core.staleness import Debouncer
from data_manager.schema import PlanVersion
from conftest import build_config


@pytest.fixture
def items(totals):
    rows, _ = generate_schedule(build_config(), totals)
    rows = rows[:8]
    for i, row in enumerate(rows):
        row.item_id = f"SI-{i}"
    return rows


def make_version(items, status=VersionStatus.DRAFT.value, **config_overrides):
    return PlanVersion(
        version_id="PV-1", case_id="CASE-001", version_number=1, status=status,
        config=build_config(**config_overrides), items=items,
    )


class TestFillHandle:
    def test_fill_skips_locked_row(self, items):
        """第 2 行的银行费填充到 3-6 行，第 4 行已 Cleared"""
        items[2].banking_fee_portion = 40.0
        items[4].status = ItemStatus.CLEARED.value
        grid = InteractiveGridController(items)

        assert grid.begin_fill_drag(CellRef(2, "banking_fee_portion"))
        assert grid.update_fill_drag(6) == (3, 5, 6)
        assert grid.end_fill_drag() == (3, 5, 6)

        rows = grid.visible_rows()
        assert [rows[i].item.banking_fee_portion for i in (3, 5, 6)] == [40.0, 40.0, 40.0]
        assert rows[4].item.banking_fee_portion == 35.0
        assert not rows[4].is_modified
        assert all(rows[i].is_modified for i in (3, 5, 6))

    def test_fill_refreshes_escrow(self, items):
        items[2].banking_fee_portion = 40.0
        grid = InteractiveGridController(items)
        before = grid.row(3).item.escrow_amount
        grid.begin_fill_drag(CellRef(2, "banking_fee_portion"))
        grid.update_fill_drag(3)
        grid.end_fill_drag()
        assert grid.row(3).item.escrow_amount == pytest.approx(before - 5, abs=0.001)

    def test_fill_upwards(self, items):
        items[4].status = ItemStatus.NSF.value
        grid = InteractiveGridController(items)
        grid.begin_fill_drag(CellRef(6, "payment_amount"))
        assert grid.update_fill_drag(3) == (3, 5)

    def test_cannot_start_on_locked_row(self, items):
        items[2].status = ItemStatus.CLEARED.value
        grid = InteractiveGridController(items)
        assert not grid.begin_fill_drag(CellRef(2, "banking_fee_portion"))
        assert grid.state.fill is None

    def test_cancel_clears_highlight(self, items):
        grid = InteractiveGridController(items)
        grid.begin_fill_drag(CellRef(1, "payment_amount"))
        grid.update_fill_drag(5)
        grid.cancel_fill_drag()
        assert grid.state.highlighted == ()
        assert grid.end_fill_drag() == ()
        assert not grid.has_pending_changes()


class TestSelection:
    def test_locked_row_not_selectable(self, items):
        items[0].status = ItemStatus.CLEARED.value
        grid = InteractiveGridController(items)
        assert not grid.select_cell(0, "payment_amount")
        assert grid.state.selection is None

    def test_single_selection(self, items):
        grid = InteractiveGridController(items)
        grid.select_cell(1, "payment_amount")
        grid.select_cell(2, "payment_date")
        assert grid.state.selection == CellRef(2, "payment_date")

    def test_archived_version_read_only(self, items):
        grid = InteractiveGridController(items, make_version(items, VersionStatus.ARCHIVED.value))
        assert not grid.select_cell(0, "payment_amount")
        with pytest.raises(ValidationError):
            grid.edit_cell(0, "payment_amount", "100")


class TestCellEditing:
    def test_live_escrow_then_commit(self, items):
        grid = InteractiveGridController(items)
        item = grid.row(1).item
        expected = round(300 - item.banking_fee_portion - item.program_fee_portion, 2)
        assert grid.edit_cell(1, "payment_amount", "$300") == expected
        grid.commit_cell(1, "payment_amount")
        assert grid.row(1).item.payment_amount == 300.0
        assert grid.row(1).is_modified

    def test_invalid_amount_rejected(self, items):
        grid = InteractiveGridController(items)
        grid.edit_cell(1, "payment_amount", "abc")
        with pytest.raises(ValidationError):
            grid.commit_cell(1, "payment_amount")

    def test_date_commit(self, items):
        grid = InteractiveGridController(items)
        grid.edit_cell(1, "payment_date", "2030-02-01")
        grid.commit_cell(1, "payment_date")
        assert grid.row(1).item.payment_date == date(2030, 2, 1)

    def test_locked_row_rejects_edits(self, items):
        items[3].status = ItemStatus.CLEARED.value
        grid = InteractiveGridController(items)
        with pytest.raises(ValidationError):
            grid.edit_cell(3, "payment_amount", "100")

    def test_computed_fields_not_editable(self, items):
        grid = InteractiveGridController(items)
        with pytest.raises(ValidationError):
            grid.edit_cell(1, "escrow_amount", "100")

    def test_status_changes_allowed_on_locked_rows(self, items):
        items[0].status = ItemStatus.CLEARED.value
        grid = InteractiveGridController(items)
        grid.set_status(0, ItemStatus.NSF.value)
        assert grid.row(0).item.status == ItemStatus.NSF.value

    def test_unknown_row(self, items):
        grid = InteractiveGridController(items)
        with pytest.raises(ValidationError):
            grid.row(99)


class TestRows:
    def test_add_row_after_last(self, items):
        version = make_version(items)
        grid = InteractiveGridController(items, version)
        row = grid.add_row(row_defaults_for(version))
        assert row.is_new
        assert row.item.sequence_number == 9
        assert row.item.payment_date == items[-1].payment_date + timedelta(days=7)
        assert row.item.banking_fee_portion == 35.0
        assert row.item.status == ItemStatus.SCHEDULED.value

    def test_add_row_defaults_scale_products_monthly(self, items):
        version = make_version(items, payment_frequency="monthly", additional_weekly_products_total=10)
        assert row_defaults_for(version)["additional_products_portion"] == 43.3

    def test_delete_new_row_removes_it(self, items):
        grid = InteractiveGridController(items)
        grid.add_row({})
        grid.delete_row(8)
        assert len(grid.state.rows) == 8

    def test_delete_existing_row_is_soft(self, items):
        grid = InteractiveGridController(items)
        grid.delete_row(2)
        assert len(grid.visible_rows()) == 7
        assert len(grid.state.rows) == 8
        assert len(grid.items_for_save()) == 7
        assert grid.has_pending_changes()

    def test_pending_edit_follows_row_after_delete(self, items):
        """删除前面的行后，未提交的编辑仍落在原来那一行"""
        grid = InteractiveGridController(items)
        untouched = grid.row(5).item.payment_amount
        grid.edit_cell(4, "payment_amount", "999")
        grid.delete_row(1)
        grid.commit_cell(4, "payment_amount")
        assert grid.row(4).item.sequence_number == 6
        assert grid.row(4).item.payment_amount == untouched
        grid.commit_cell(3, "payment_amount")
        assert grid.row(3).item.sequence_number == 5
        assert grid.row(3).item.payment_amount == 999.0

    def test_delete_drops_edits_of_deleted_row(self, items):
        grid = InteractiveGridController(items)
        grid.edit_cell(2, "payment_amount", "500")
        grid.edit_cell(3, "payment_date", "2030-03-01")
        grid.delete_row(2)
        assert grid.state.edit_buffer == {(2, "payment_date"): "2030-03-01"}

    def test_locked_row_cannot_be_deleted(self, items):
        items[0].status = ItemStatus.CLEARED.value
        grid = InteractiveGridController(items)
        with pytest.raises(ValidationError):
            grid.delete_row(0)

    def test_draft_numbers_skip_returned_and_cancelled(self, items):
        items[1].status = ItemStatus.NSF.value
        items[3].status = ItemStatus.CANCELLED.value
        grid = InteractiveGridController(items)
        assert grid.draft_numbers()[:5] == [1, None, 2, None, 3]

    def test_source_items_not_mutated(self, items):
        grid = InteractiveGridController(items)
        grid.edit_cell(1, "payment_amount", "300")
        grid.commit_cell(1, "payment_amount")
        assert items[1].payment_amount != 300.0


class TestBalances:
    def test_apply_balances_skips_locked_rows(self, items):
        items[0].status = ItemStatus.CLEARED.value
        grid = InteractiveGridController(items)
        rows = [r.item for r in grid.visible_rows()]
        cleared_balance = rows[0].running_balance
        grid.apply_balances(rows, [1.0] * len(rows))
        assert rows[0].running_balance == cleared_balance
        assert all(r.running_balance == 1.0 for r in rows[1:])


class TestDebouncedRecompute:
    @pytest.mark.asyncio
    async def test_burst_of_edits_recomputes_once(self, items):
        calls = []
        grid = InteractiveGridController(items, debouncer=Debouncer(20),
                                         on_recompute=lambda: calls.append(1), delay_ms=20)
        for value in ("3", "30", "300"):
            grid.edit_cell(1, "payment_amount", value)
        await asyncio.sleep(0.08)
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_reset_cancels_pending_recompute(self, items):
        calls = []
        grid = InteractiveGridController(items, debouncer=Debouncer(20),
                                         on_recompute=lambda: calls.append(1), delay_ms=20)
        grid.edit_cell(1, "payment_amount", "300")
        grid.reset(items)
        await asyncio.sleep(0.08)
        assert calls == []
