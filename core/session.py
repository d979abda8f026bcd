"""编辑器会话：把配置、计算、版本管理、表格和过期保护串起来

会话是单线程协作式的；所有异步入口都经过 StalenessGuard，切换版本或关闭时
取消防抖定时器并作废在途结果。
"""
import logging
from typing import List, Optional, Sequence

from config.settings import CALC_DEBOUNCE_DELAY_MS, DEBOUNCE_DELAY_MS, FREEZE_ACTIVE_VERSIONS
from core.calculator import funding_target, rebalance
from core.errors import (
    ConfigurationUnavailable, PaymentPlanError, StaleResultDiscarded, ValidationError,
)
from core.grid import InteractiveGridController, row_defaults_for
from core.policy import ConfigurationService
from core.service import CalculationService, RebalanceResult, ScheduleResult
from core.staleness import Debouncer, StalenessGuard
from core.summary import EditSummary, edit_summary
from core.undo import TentativeChanges
from core.versions import DraftVersionManager, PlanStore
from data_manager.schema import PlanConfiguration, PlanTotals, PlanVersion

logger = logging.getLogger(__name__)


class EditorSession:
    def __init__(
        self,
        case_id: str,
        store: PlanStore,
        config_service: ConfigurationService,
        calc_service: Optional[CalculationService] = None,
        freeze_active: bool = FREEZE_ACTIVE_VERSIONS,
        calc_delay_ms: int = CALC_DEBOUNCE_DELAY_MS,
        edit_delay_ms: int = DEBOUNCE_DELAY_MS,
        debounce_edits: bool = True,
    ):
        self.case_id = case_id
        self.manager = DraftVersionManager(store, freeze_active)
        self.config_service = config_service
        self.calc_service = calc_service or CalculationService()
        self.guard = StalenessGuard()
        # 表格余额重算单独计号，不作废在途的保存或预览
        self.edit_guard = StalenessGuard()
        self.calc_debouncer = Debouncer(calc_delay_ms)
        self.edit_debouncer = Debouncer(edit_delay_ms)
        self.tentative = TentativeChanges()
        # 同步环境（如 Streamlit 重跑）没有事件循环，不挂防抖
        self.debounce_edits = debounce_edits

        self.disabled = False
        self.config_error: Optional[ConfigurationUnavailable] = None
        self.last_error: Optional[PaymentPlanError] = None
        self.preview: Optional[ScheduleResult] = None
        self.preview_config: Optional[PlanConfiguration] = None
        self.preview_totals: Optional[PlanTotals] = None
        self.versions: List[PlanVersion] = []
        self.version: Optional[PlanVersion] = None
        self.grid: Optional[InteractiveGridController] = None
        self.edit_summary: Optional[EditSummary] = None
        self.closed = False

    # ---- 配置 ----

    def _disable(self, exc: ConfigurationUnavailable):
        self.disabled = True
        self.config_error = exc
        logger.error(f"Calculator disabled: {exc.message}")

    def check_configuration(self) -> bool:
        """配置加载失败则禁用计算，直到重新加载成功"""
        try:
            self.config_service.load_policy(refresh=True)
        except ConfigurationUnavailable as exc:
            self._disable(exc)
            raise
        self.disabled = False
        self.config_error = None
        return True

    # ---- 版本加载 ----

    def load(self) -> Optional[PlanVersion]:
        """打开主版本，没有主版本时打开最新版本"""
        self.versions = self.manager.versions(self.case_id)
        if not self.versions:
            self.version, self.grid = None, None
            return None
        chosen = next((v for v in self.versions if v.is_primary), self.versions[-1])
        self._open(chosen)
        return chosen

    def _open(self, version: PlanVersion):
        self.version = version
        self.grid = InteractiveGridController(
            version.items, version, self.manager.freeze_active,
            debouncer=self.edit_debouncer if self.debounce_edits else None,
            on_recompute=self._on_grid_recompute,
            delay_ms=self.edit_debouncer.delay_ms,
        )
        self.grid.mark_changed_from_previous(self.manager.modified_sequence_numbers(version))
        self.edit_summary = edit_summary(version.items, self._funding_target())

    def _funding_target(self) -> float:
        if self.version.total_program_cost is not None:
            return self.version.total_program_cost
        return funding_target(self.version.items)

    def _on_grid_recompute(self):
        return self.recompute_edits()

    async def recompute_edits(self) -> Optional[RebalanceResult]:
        """编辑停顿后重算余额与汇总，过期结果丢弃"""
        if self.grid is None or self.version is None:
            return None
        grid = self.grid
        items = [r.item for r in grid.visible_rows()]
        target = self._funding_target()
        try:
            result = await self.edit_guard.run(lambda: self.calc_service.rebalance(items, target))
        except StaleResultDiscarded:
            return None
        grid.apply_balances(items, result.balances)
        self.edit_summary = result.summary
        logger.debug(f"Rebalanced {len(items)} rows, remaining {result.summary.remaining_balance}")
        return result

    def refresh_balances(self) -> Optional[EditSummary]:
        """同步重算（保存前、无事件循环的页面），同时作废在途的异步重算"""
        if self.grid is None or self.version is None:
            return None
        self.edit_guard.invalidate()
        items = [r.item for r in self.grid.visible_rows()]
        target = self._funding_target()
        self.grid.apply_balances(items, rebalance(items, target))
        self.edit_summary = edit_summary(items, target)
        return self.edit_summary

    def select_version(self, version_id: str) -> PlanVersion:
        self.calc_debouncer.cancel()
        self.edit_debouncer.cancel()
        self.guard.invalidate()
        self.edit_guard.invalidate()
        version = self.manager.get(version_id, "open")
        if version.case_id != self.case_id:
            raise ValidationError(f"Version {version_id} belongs to another case", field="version_id")
        self._open(version)
        return version

    def close(self):
        self.calc_debouncer.cancel()
        self.edit_debouncer.cancel()
        self.guard.invalidate()
        self.edit_guard.invalidate()
        self.closed = True
        logger.info(f"Editor session for case {self.case_id} closed")

    # ---- 计算预览 ----

    async def calculate_preview(self, totals: PlanTotals, **inputs) -> Optional[ScheduleResult]:
        """计算预览；过期结果返回 None，当前请求的错误记录到 last_error 后抛出"""
        if self.disabled:
            raise self.config_error
        try:
            config = self.config_service.build_configuration(**inputs)
        except ConfigurationUnavailable as exc:
            self._disable(exc)
            raise
        except ValidationError as exc:
            self.last_error = exc
            raise
        try:
            result = await self.guard.run(lambda: self.calc_service.calculate(config, totals))
        except StaleResultDiscarded:
            return None
        except PaymentPlanError as exc:
            self.last_error = exc
            raise
        self.preview, self.preview_config, self.preview_totals = result, config, totals
        self.last_error = None
        return result

    def schedule_preview(self, totals: PlanTotals, **inputs):
        """输入变化时调用，防抖后再计算"""
        self.calc_debouncer.schedule(lambda: self._debounced_preview(totals, inputs))

    async def _debounced_preview(self, totals: PlanTotals, inputs: dict):
        try:
            await self.calculate_preview(totals, **inputs)
        except PaymentPlanError as exc:
            # 错误已记录在 last_error / config_error，由页面展示
            logger.info(f"Preview failed: {exc.describe()}")

    def create_from_preview(self, created_by: str = "system") -> PlanVersion:
        if self.preview_config is None or self.preview_totals is None:
            raise ValidationError("Calculate a schedule before creating a draft", field="preview")
        version = self.manager.create(self.case_id, self.preview_config, self.preview_totals, created_by)
        self.versions = self.manager.versions(self.case_id)
        self._open(version)
        return version

    # ---- 编辑与保存 ----

    async def save_edits(self, created_by: str = "system") -> Optional[PlanVersion]:
        if self.version is None or self.grid is None:
            raise ValidationError("No version is open", field="version_id")
        source_id = self.version.version_id
        self.edit_debouncer.cancel_timer()
        self.refresh_balances()
        items = self.grid.items_for_save()

        async def _save():
            return self.manager.save_edits(source_id, items, created_by)

        try:
            version = await self.guard.run(_save)
        except StaleResultDiscarded:
            return None
        self.versions = self.manager.versions(self.case_id)
        self._open(version)
        return version

    async def recalculate(self, totals: PlanTotals, config: Optional[PlanConfiguration] = None,
                          created_by: str = "system") -> Optional[PlanVersion]:
        if self.disabled:
            raise self.config_error
        if self.version is None:
            raise ValidationError("No version is open", field="version_id")
        source_id = self.version.version_id

        async def _recalculate():
            return self.manager.recalculate(source_id, totals, config, created_by)

        try:
            version = await self.guard.run(_recalculate)
        except StaleResultDiscarded:
            return None
        self.versions = self.manager.versions(self.case_id)
        self._open(version)
        return version

    async def mark_status(self, row_index: int, status: str):
        """乐观更新行状态，持久化失败时回滚"""
        if self.grid is None or self.version is None:
            raise ValidationError("No version is open", field="version_id")
        row = self.grid.row(row_index)
        item_id = row.item.item_id
        if not item_id:
            raise ValidationError("Save the schedule before changing payment status", field="status")
        self.tentative.apply(item_id, row.item, "status", status)
        try:
            await self._persist_status(item_id, status)
        except PaymentPlanError:
            self.tentative.rollback(item_id)
            raise
        self.tentative.commit(item_id)

    async def _persist_status(self, item_id: str, status: str):
        self.manager.update_item_status(self.version.version_id, item_id, status)

    def add_row(self):
        if self.grid is None or self.version is None:
            raise ValidationError("No version is open", field="version_id")
        return self.grid.add_row(row_defaults_for(self.version))

    # ---- 变更通知 ----

    async def on_case_invalidated(self, case_id: str,
                                  version_ids: Optional[Sequence[str]] = None) -> bool:
        """外部通知：相关记录变化，重新读取受影响的版本"""
        if self.closed or case_id != self.case_id:
            return False
        self.versions = self.manager.handle_invalidation(case_id, version_ids)
        current_id = self.version.version_id if self.version else None
        refreshed = next((v for v in self.versions if v.version_id == current_id), None)
        if refreshed is None:
            self.load()
        else:
            self.version = refreshed
            if self.grid is not None:
                self.grid.version = refreshed
        logger.info(f"Case {case_id} invalidated; {len(self.versions)} versions reloaded")
        return True
