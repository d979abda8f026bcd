"""付款计划表格的编辑状态机

所有状态集中在 EditorState，修改都走具名操作（select / fill / edit / commit / add / delete），
便于记录和测试。行号指未删除行中的位置（从 0 开始）。
"""
import copy
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from config.constants import DATE_FIELDS, EDITABLE_FIELDS, NUMERIC_FIELDS, ItemStatus
from config.settings import ADD_ROW_STEP_DAYS, DEBOUNCE_DELAY_MS, FREEZE_ACTIVE_VERSIONS
from core.bounds import period_factor
from core.errors import ValidationError
from core.fees import recompute_escrow
from core.staleness import Debouncer
from core.versions import is_editable
from data_manager.schema import PlanVersion, ScheduleItem
from utils.date_utils import default_first_payment_date, parse_date
from utils.formatters import parse_amount, round_money

logger = logging.getLogger(__name__)


@dataclass
class GridRow:
    item: ScheduleItem
    is_new: bool = False
    is_deleted: bool = False
    is_modified: bool = False


@dataclass(frozen=True)
class CellRef:
    row_index: int
    field: str


@dataclass
class FillDrag:
    source: CellRef
    pointer_row: int

    @property
    def direction(self) -> Optional[str]:
        if self.pointer_row > self.source.row_index:
            return "down"
        if self.pointer_row < self.source.row_index:
            return "up"
        return None

    def span(self) -> range:
        """源单元格与指针之间的行（不含源行）"""
        if self.direction == "down":
            return range(self.source.row_index + 1, self.pointer_row + 1)
        if self.direction == "up":
            return range(self.pointer_row, self.source.row_index)
        return range(0)


@dataclass
class EditorState:
    rows: List[GridRow]
    selection: Optional[CellRef] = None
    fill: Optional[FillDrag] = None
    highlighted: Tuple[int, ...] = ()
    edit_buffer: Dict[Tuple[int, str], str] = field(default_factory=dict)
    changed_from_previous: Set[int] = field(default_factory=set)
    transitions: List[str] = field(default_factory=list)


class InteractiveGridController:
    def __init__(
        self,
        items: Sequence[ScheduleItem],
        version: Optional[PlanVersion] = None,
        freeze_active: bool = FREEZE_ACTIVE_VERSIONS,
        debouncer: Optional[Debouncer] = None,
        on_recompute: Optional[Callable[[], object]] = None,
        delay_ms: int = DEBOUNCE_DELAY_MS,
    ):
        self.version = version
        self.freeze_active = freeze_active
        self._debouncer = debouncer
        self._on_recompute = on_recompute
        self._delay_ms = delay_ms
        self.state = EditorState(rows=[GridRow(copy.deepcopy(i)) for i in items])

    def _transition(self, name: str, **details):
        self.state.transitions.append(name)
        logger.debug(f"grid {name} {details}")

    def _schedule_recompute(self):
        if self._debouncer is not None and self._on_recompute is not None:
            self._debouncer.schedule(self._on_recompute, self._delay_ms)

    # ---- 行访问 ----

    def visible_rows(self) -> List[GridRow]:
        return [r for r in self.state.rows if not r.is_deleted]

    def row(self, row_index: int) -> GridRow:
        rows = self.visible_rows()
        if not 0 <= row_index < len(rows):
            raise ValidationError(f"Row {row_index} does not exist", field="row_index",
                                  requested=row_index)
        return rows[row_index]

    def is_row_editable(self, row_index: int) -> bool:
        return is_editable(self.row(row_index).item, self.version, self.freeze_active)

    def _require_editable(self, row_index: int, field_name: str) -> GridRow:
        if field_name not in EDITABLE_FIELDS:
            raise ValidationError(f"{field_name} is not editable", field=field_name)
        row = self.row(row_index)
        if not is_editable(row.item, self.version, self.freeze_active):
            raise ValidationError(
                f"Payment #{row.item.sequence_number} is {row.item.status} and cannot be edited",
                field=field_name,
            )
        return row

    @staticmethod
    def _refresh_escrow(item: ScheduleItem, overrides: Optional[dict] = None):
        values = {f: getattr(item, f) for f in NUMERIC_FIELDS}
        values.update(overrides or {})
        item.escrow_amount = recompute_escrow(
            values["payment_amount"], values["banking_fee_portion"],
            values["program_fee_portion"], values["setup_fee_portion"],
            values["secondary_banking_fee_portion"], values["additional_products_portion"],
        )

    # ---- 选择 ----

    def select_cell(self, row_index: int, field_name: str) -> bool:
        """锁定行不可选中（无操作，返回 False）；单选，新选择替换旧选择"""
        if not self.is_row_editable(row_index) or field_name not in EDITABLE_FIELDS:
            return False
        self.state.selection = CellRef(row_index, field_name)
        self._transition("select_cell", row=row_index, field=field_name)
        return True

    def clear_selection(self):
        self.state.selection = None
        self._transition("clear_selection")

    # ---- 填充柄 ----

    def begin_fill_drag(self, source: Optional[CellRef] = None) -> bool:
        source = source or self.state.selection
        if source is None or not self.is_row_editable(source.row_index):
            return False
        self.state.selection = source
        self.state.fill = FillDrag(source, source.row_index)
        self.state.highlighted = ()
        self._transition("begin_fill_drag", row=source.row_index, field=source.field)
        return True

    def _fill_targets(self, drag: FillDrag) -> Tuple[int, ...]:
        last = len(self.visible_rows()) - 1
        return tuple(i for i in drag.span() if 0 <= i <= last and self.is_row_editable(i))

    def update_fill_drag(self, pointer_row: int) -> Tuple[int, ...]:
        drag = self.state.fill
        if drag is None:
            return ()
        drag.pointer_row = pointer_row
        self.state.highlighted = self._fill_targets(drag)
        return self.state.highlighted

    def end_fill_drag(self) -> Tuple[int, ...]:
        """松开鼠标：把源单元格的值复制到范围内所有未锁定行"""
        drag = self.state.fill
        if drag is None:
            return ()
        targets = self._fill_targets(drag)
        source_field = drag.source.field
        value = getattr(self.row(drag.source.row_index).item, source_field)
        rows = self.visible_rows()
        for index in targets:
            row = rows[index]
            setattr(row.item, source_field, value)
            if source_field in NUMERIC_FIELDS:
                self._refresh_escrow(row.item)
            row.is_modified = True
        self.state.fill = None
        self.state.highlighted = ()
        self._transition("end_fill_drag", field=source_field, rows=targets)
        if targets:
            self._schedule_recompute()
        return targets

    def cancel_fill_drag(self):
        self.state.fill = None
        self.state.highlighted = ()
        self._transition("cancel_fill_drag")

    # ---- 单元格编辑 ----

    def edit_cell(self, row_index: int, field_name: str, raw_value) -> Optional[float]:
        """每次按键：写入编辑缓冲，金额字段实时重算储蓄，返回新的储蓄金额"""
        row = self._require_editable(row_index, field_name)
        self.state.edit_buffer[(row_index, field_name)] = "" if raw_value is None else str(raw_value)
        escrow = None
        if field_name in NUMERIC_FIELDS:
            amount = parse_amount(raw_value)
            if amount is not None:
                self._refresh_escrow(row.item, {field_name: amount})
                escrow = row.item.escrow_amount
        self._transition("edit_cell", row=row_index, field=field_name)
        self._schedule_recompute()
        return escrow

    def commit_cell(self, row_index: int, field_name: str):
        """失焦：规范化缓冲内容并写回行数据"""
        raw = self.state.edit_buffer.pop((row_index, field_name), None)
        if raw is None:
            return
        row = self._require_editable(row_index, field_name)
        if field_name in NUMERIC_FIELDS:
            amount = parse_amount(raw)
            if amount is None:
                raise ValidationError(f"'{raw}' is not a valid amount", field=field_name)
            if getattr(row.item, field_name) != amount:
                setattr(row.item, field_name, amount)
                row.is_modified = True
            self._refresh_escrow(row.item)
        elif field_name in DATE_FIELDS:
            try:
                new_date = parse_date(raw)
            except ValueError as exc:
                raise ValidationError(f"'{raw}' is not a valid date", field=field_name) from exc
            if new_date is None:
                raise ValidationError("Payment date is required", field=field_name)
            if row.item.payment_date != new_date:
                row.item.payment_date = new_date
                row.is_modified = True
        self._transition("commit_cell", row=row_index, field=field_name)

    def set_status(self, row_index: int, status: str):
        """状态可通过显式操作修改，锁定行也允许"""
        status = ItemStatus(status).value
        row = self.row(row_index)
        if row.item.status != status:
            row.item.status = status
            row.is_modified = True
        if self.state.selection is not None and self.state.selection.row_index == row_index \
                and not self.is_row_editable(row_index):
            self.state.selection = None
        self._transition("set_status", row=row_index, status=status)

    # ---- 增删行 ----

    def add_row(self, defaults: dict) -> GridRow:
        """新增行：费用取自配置，日期为最后一行之后 7 天"""
        rows = self.visible_rows()
        if rows:
            last_date = max(r.item.payment_date for r in rows)
            new_date = last_date + timedelta(days=ADD_ROW_STEP_DAYS)
        else:
            new_date = default_first_payment_date()
        next_seq = max((r.item.sequence_number for r in self.state.rows), default=0) + 1
        item = ScheduleItem(
            sequence_number=next_seq,
            payment_date=new_date,
            payment_amount=float(defaults.get("payment_amount", 0.0)),
            setup_fee_portion=float(defaults.get("setup_fee_portion", 0.0)),
            program_fee_portion=float(defaults.get("program_fee_portion", 0.0)),
            banking_fee_portion=float(defaults.get("banking_fee_portion", 0.0)),
            secondary_banking_fee_portion=float(defaults.get("secondary_banking_fee_portion", 0.0)),
            additional_products_portion=float(defaults.get("additional_products_portion", 0.0)),
            status=ItemStatus.SCHEDULED.value,
        )
        self._refresh_escrow(item)
        row = GridRow(item, is_new=True, is_modified=True)
        self.state.rows.append(row)
        self._transition("add_row", sequence=next_seq)
        return row

    def delete_row(self, row_index: int):
        """未保存的新行直接移除，其余行软删除"""
        row = self.row(row_index)
        if not is_editable(row.item, self.version, self.freeze_active):
            raise ValidationError(
                f"Payment #{row.item.sequence_number} is {row.item.status} and cannot be deleted",
                field="row_index", requested=row_index,
            )
        if row.is_new:
            self.state.rows.remove(row)
        else:
            row.is_deleted = True
        self.state.selection = None
        self.state.fill = None
        # 删除后后续行上移一位，缓冲键同步平移
        self.state.edit_buffer = {
            (k[0] - 1 if k[0] > row_index else k[0], k[1]): v
            for k, v in self.state.edit_buffer.items() if k[0] != row_index
        }
        self._transition("delete_row", row=row_index)

    # ---- 保存与展示 ----

    def has_pending_changes(self) -> bool:
        return bool(self.state.edit_buffer) or any(
            r.is_modified or r.is_deleted or r.is_new for r in self.state.rows)

    def apply_balances(self, items: Sequence[ScheduleItem], balances: Sequence[float]):
        """写回重算的余额；冻结行保持原值"""
        for item, balance in zip(items, balances):
            if not item.is_locked:
                item.running_balance = balance
        self._transition("apply_balances", rows=len(balances))

    def items_for_save(self) -> List[ScheduleItem]:
        return [copy.deepcopy(r.item) for r in self.visible_rows()]

    def draft_numbers(self) -> List[Optional[int]]:
        """扣款序号：NSF / Cancelled 行不编号"""
        numbers, n = [], 0
        for row in self.visible_rows():
            if row.item.status in (ItemStatus.NSF.value, ItemStatus.CANCELLED.value):
                numbers.append(None)
            else:
                n += 1
                numbers.append(n)
        return numbers

    def mark_changed_from_previous(self, sequence_numbers: Set[int]):
        self.state.changed_from_previous = set(sequence_numbers)

    def reset(self, items: Sequence[ScheduleItem], version: Optional[PlanVersion] = None):
        self.version = version
        self.state = EditorState(rows=[GridRow(copy.deepcopy(i)) for i in items])
        if self._debouncer is not None:
            self._debouncer.cancel()
        self._transition("reset")


def row_defaults_for(version: PlanVersion) -> dict:
    """新增行默认值取自版本配置，与相邻行无关"""
    config = version.config
    return {
        "banking_fee_portion": config.banking_fee,
        "secondary_banking_fee_portion": config.secondary_banking_fee,
        "additional_products_portion": round_money(
            config.additional_weekly_products_total * period_factor(config)),
    }
