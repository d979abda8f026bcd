"""电汇费用台账与乐观更新测试"""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dataclasses import dataclass
import pytest
from config.constants import WireFeeType
from core.calculator import generate_schedule
from core.errors import ValidationError
from core.undo import TentativeChanges
from core.wire_fees import WireFeeLedger
from conftest import build_config


@pytest.fixture
def items(totals):
    rows, _ = generate_schedule(build_config(), totals)
    for i, row in enumerate(rows[:3]):
        row.item_id = f"SI-{i}"
    return rows[:3]


@pytest.fixture
def ledger(store):
    return WireFeeLedger(store)


class TestWireFeeLedger:
    def test_add_and_group(self, ledger, items):
        ledger.add_fee("SI-0", WireFeeType.WIRE_FEE.value, 25)
        ledger.add_fee("SI-0", WireFeeType.WIRE_RECEIVED_FEE.value)
        ledger.add_fee("SI-1", WireFeeType.WIRE_FEE.value, 15.555)
        grouped = ledger.fees_by_item(items)
        assert len(grouped["SI-0"]) == 2
        assert grouped["SI-1"][0].amount == 15.56
        assert ledger.total_for_item("SI-0") == 25.0

    def test_orphaned_fees_ignored(self, ledger, items):
        ledger.add_fee("SI-gone", WireFeeType.WIRE_FEE.value, 25)
        assert ledger.fees_by_item(items) == {}
        assert ledger.ledger_frame(items).empty

    def test_unsaved_row_rejected(self, ledger):
        with pytest.raises(ValidationError) as exc_info:
            ledger.add_fee(None, WireFeeType.WIRE_FEE.value, 25)
        assert exc_info.value.field == "schedule_item_id"

    def test_negative_amount_rejected(self, ledger):
        with pytest.raises(ValidationError) as exc_info:
            ledger.add_fee("SI-0", WireFeeType.WIRE_FEE.value, -5)
        assert exc_info.value.field == "amount"

    def test_unknown_type_rejected(self, ledger):
        with pytest.raises(ValidationError) as exc_info:
            ledger.add_fee("SI-0", "Courier Fee", 5)
        assert exc_info.value.field == "fee_type"

    def test_delete(self, ledger, items):
        fee = ledger.add_fee("SI-0", WireFeeType.WIRE_FEE.value, 25)
        assert ledger.delete_fee(fee.fee_id)
        assert not ledger.delete_fee(fee.fee_id)
        assert ledger.fees_by_item(items) == {}

    def test_ledger_frame_columns(self, ledger, items):
        ledger.add_fee("SI-2", WireFeeType.WIRE_FEE.value, 25)
        df = ledger.ledger_frame(items)
        assert list(df["schedule_item_id"]) == ["SI-2"]
        assert "fee_type" in df.columns


@dataclass
class _Row:
    status: str = "Scheduled"
    amount: float = 100.0


class TestTentativeChanges:
    def test_commit_keeps_value(self):
        row = _Row()
        changes = TentativeChanges()
        changes.apply("r1", row, "status", "Cleared")
        assert changes.has_pending("r1")
        changes.commit("r1")
        assert row.status == "Cleared"
        assert not changes.has_pending("r1")

    def test_rollback_restores_original(self):
        row = _Row()
        changes = TentativeChanges()
        changes.apply("r1", row, "status", "Cleared")
        changes.apply("r1", row, "status", "NSF")
        changes.apply("r1", row, "amount", 50.0)
        changes.rollback("r1")
        assert row == _Row()

    def test_rollback_is_per_entity(self):
        a, b = _Row(), _Row()
        changes = TentativeChanges()
        changes.apply("a", a, "status", "Cleared")
        changes.apply("b", b, "status", "Cleared")
        changes.rollback("a")
        assert a.status == "Scheduled"
        assert b.status == "Cleared"
