"""方案版本生命周期：Draft → Active → Suspended → Archived

版本只追加不修改：重算、保存编辑、暂停都会生成新版本，旧版本只改状态。
非 Scheduled 行在任何新版本中都原样保留（item_id 不变，电汇费用随之保留）。
"""
import copy
import logging
from datetime import datetime
from typing import List, Optional, Protocol, Sequence, Set

from config.constants import (
    DELETABLE_VERSION_STATUSES, RECALCULABLE_VERSION_STATUSES,
    ItemStatus, SyncStatus, VersionStatus,
)
from config.settings import FREEZE_ACTIVE_VERSIONS
from core.calculator import generate_schedule, regenerate_scheduled
from core.errors import InvalidTransitionError, ValidationError, VersionNotFound
from data_manager.schema import PlanConfiguration, PlanTotals, PlanVersion, ScheduleItem
from utils.id_generator import generate_item_id, generate_version_id

logger = logging.getLogger(__name__)

# 比较行是否被修改时使用的字段
_COMPARED_FIELDS = (
    "payment_date", "payment_amount", "setup_fee_portion", "program_fee_portion",
    "banking_fee_portion", "secondary_banking_fee_portion", "additional_products_portion",
    "escrow_amount", "status",
)


class PlanStore(Protocol):
    def load_versions(self, case_id: str) -> List[PlanVersion]: ...
    def load_version(self, version_id: str) -> Optional[PlanVersion]: ...
    def save_version(self, version: PlanVersion): ...
    def set_primary(self, version_id: str, expected_primary_id: Optional[str]): ...
    def update_version_status(self, version_id: str, status: Optional[str] = None,
                              sync_status: Optional[str] = None): ...
    def update_item_status(self, version_id: str, item_id: str, status: str): ...
    def delete(self, version_id: str): ...


def is_editable(item: ScheduleItem, version: Optional[PlanVersion] = None,
                freeze_active: bool = FREEZE_ACTIVE_VERSIONS) -> bool:
    """行是否可编辑：唯一判断入口"""
    if item.is_locked:
        return False
    if version is None:
        return True
    if version.status in (VersionStatus.ARCHIVED.value, VersionStatus.SUSPENDED.value):
        return False
    if freeze_active and version.status == VersionStatus.ACTIVE.value:
        return False
    return True


def _row_key(item: ScheduleItem) -> tuple:
    return tuple(getattr(item, f) for f in _COMPARED_FIELDS)


def _assign_ids(items: Sequence[ScheduleItem]) -> List[ScheduleItem]:
    for item in items:
        if not item.item_id:
            item.item_id = generate_item_id()
    return list(items)


class DraftVersionManager:
    def __init__(self, store: PlanStore, freeze_active: bool = FREEZE_ACTIVE_VERSIONS):
        self.store = store
        self.freeze_active = freeze_active

    # ---- 查询 ----

    def get(self, version_id: str, attempted: str = "load") -> PlanVersion:
        version = self.store.load_version(version_id)
        if version is None:
            raise VersionNotFound(attempted, version_id)
        return version

    def versions(self, case_id: str) -> List[PlanVersion]:
        return self.store.load_versions(case_id)

    def primary(self, case_id: str) -> Optional[PlanVersion]:
        return next((v for v in self.versions(case_id) if v.is_primary), None)

    def _next_number(self, case_id: str) -> int:
        return max((v.version_number for v in self.versions(case_id)), default=0) + 1

    def _new_version(self, source: Optional[PlanVersion], case_id: str, config: PlanConfiguration,
                     items: List[ScheduleItem], status: str, created_by: str,
                     total_program_cost: Optional[float] = None) -> PlanVersion:
        if total_program_cost is None and source is not None:
            total_program_cost = source.total_program_cost
        return PlanVersion(
            version_id=generate_version_id(),
            case_id=case_id,
            version_number=self._next_number(case_id),
            status=status,
            config=config,
            items=_assign_ids(items),
            is_primary=False,
            created_at=datetime.now(),
            created_by=created_by,
            supersedes_id=source.version_id if source else None,
            sync_status=SyncStatus.IN_SYNC.value,
            total_program_cost=total_program_cost,
        )

    def _supersede_draft(self, source: PlanVersion, new_version: PlanVersion):
        """新版本取代 Draft：旧 Draft 归档，主版本标记随之转移"""
        if source.status != VersionStatus.DRAFT.value:
            return
        if source.is_primary:
            self.store.set_primary(new_version.version_id, expected_primary_id=source.version_id)
            new_version.is_primary = True
        self.store.update_version_status(source.version_id, status=VersionStatus.ARCHIVED.value)
        logger.info(f"Version {source.version_id} archived, superseded by {new_version.version_id}")

    # ---- 生命周期操作 ----

    def create(self, case_id: str, config: PlanConfiguration, totals: PlanTotals,
               created_by: str = "system") -> PlanVersion:
        """按配置生成新 Draft；该案件没有其他版本时自动成为主版本"""
        items, summary = generate_schedule(config, totals)
        existing = self.versions(case_id)
        version = self._new_version(None, case_id, config, items, VersionStatus.DRAFT.value, created_by,
                                    summary.total_program_cost)
        version.is_primary = not existing
        self.store.save_version(version)
        logger.info(f"Created version {version.version_id} for case {case_id} "
                    f"({summary.number_of_periods} payments, primary={version.is_primary})")
        return version

    def recalculate(self, version_id: str, totals: PlanTotals,
                    config: Optional[PlanConfiguration] = None,
                    created_by: str = "system") -> PlanVersion:
        """只重新生成 Scheduled 行，冻结行原样复制到新 Draft"""
        source = self.get(version_id, "recalculate")
        if source.status not in RECALCULABLE_VERSION_STATUSES:
            raise InvalidTransitionError("recalculate", source.status, version_id)
        config = config or source.config

        items, summary = regenerate_scheduled(copy.deepcopy(source.items), config, totals)
        version = self._new_version(source, source.case_id, config, items,
                                    VersionStatus.DRAFT.value, created_by, summary.total_program_cost)
        self.store.save_version(version)
        self._supersede_draft(source, version)
        logger.info(f"Recalculated {version_id} into {version.version_id}")
        return version

    def save_edits(self, version_id: str, items: Sequence[ScheduleItem],
                   created_by: str = "system") -> PlanVersion:
        """把表格编辑保存为新 Draft；冻结行必须与原版本一致"""
        source = self.get(version_id, "save edits to")
        if source.status == VersionStatus.ARCHIVED.value:
            raise InvalidTransitionError("save edits to", source.status, version_id)
        if self.freeze_active and source.status == VersionStatus.ACTIVE.value:
            raise InvalidTransitionError("save edits to", source.status, version_id)

        edited = {i.item_id: i for i in items if i.item_id}
        for frozen in (i for i in source.items if i.is_locked):
            candidate = edited.get(frozen.item_id)
            if candidate is None or _row_key(candidate) != _row_key(frozen):
                raise ValidationError(
                    f"Payment #{frozen.sequence_number} is {frozen.status} and cannot be changed",
                    field="items",
                )

        new_items = copy.deepcopy(sorted(items, key=lambda i: (i.payment_date, i.sequence_number)))
        next_seq = max((i.sequence_number for i in source.items if i.is_locked), default=0) + 1
        for item in new_items:
            if not item.is_locked:
                item.sequence_number = max(item.sequence_number, next_seq)
                next_seq = item.sequence_number + 1
        version = self._new_version(source, source.case_id, source.config, new_items,
                                    VersionStatus.DRAFT.value, created_by)
        self.store.save_version(version)
        self._supersede_draft(source, version)
        logger.info(f"Saved edits of {version_id} as {version.version_id}")
        return version

    def set_primary(self, version_id: str) -> PlanVersion:
        version = self.get(version_id, "set primary")
        if version.status == VersionStatus.ARCHIVED.value:
            raise InvalidTransitionError("set primary", version.status, version_id)
        if version.is_primary:
            return version
        current = self.primary(version.case_id)
        self.store.set_primary(version_id, expected_primary_id=current.version_id if current else None)
        version.is_primary = True
        logger.info(f"Version {version_id} is now primary for case {version.case_id}")
        return version

    def activate(self, version_id: str) -> PlanVersion:
        """Draft → Active；同案件其他 Active 版本归档，本版本成为主版本"""
        version = self.get(version_id, "activate")
        if version.status != VersionStatus.DRAFT.value:
            raise InvalidTransitionError("activate", version.status, version_id)

        siblings = self.versions(version.case_id)
        current = next((v for v in siblings if v.is_primary), None)
        if not version.is_primary:
            self.store.set_primary(version_id, expected_primary_id=current.version_id if current else None)
        for other in siblings:
            if other.version_id != version_id and other.status == VersionStatus.ACTIVE.value:
                self.store.update_version_status(other.version_id, status=VersionStatus.ARCHIVED.value)
                logger.info(f"Version {other.version_id} archived by activation of {version_id}")
        self.store.update_version_status(version_id, status=VersionStatus.ACTIVE.value)
        return self.get(version_id)

    def suspend(self, version_id: str, created_by: str = "system") -> PlanVersion:
        """Active → 新的 Suspended 版本，其中 Scheduled 行全部取消"""
        source = self.get(version_id, "suspend")
        if source.status != VersionStatus.ACTIVE.value:
            raise InvalidTransitionError("suspend", source.status, version_id)

        items = copy.deepcopy(source.items)
        for item in items:
            if item.status == ItemStatus.SCHEDULED.value:
                item.status = ItemStatus.CANCELLED.value
        version = self._new_version(source, source.case_id, source.config, items,
                                    VersionStatus.SUSPENDED.value, created_by)
        self.store.save_version(version)
        if source.is_primary:
            self.store.set_primary(version.version_id, expected_primary_id=source.version_id)
            version.is_primary = True
        self.store.update_version_status(source.version_id, status=VersionStatus.ARCHIVED.value)
        logger.info(f"Suspended {version_id} into {version.version_id}")
        return version

    def delete(self, version_id: str):
        version = self.get(version_id, "delete")
        if version.status not in DELETABLE_VERSION_STATUSES:
            raise InvalidTransitionError("delete", version.status, version_id)
        if version.is_primary:
            raise InvalidTransitionError("delete", f"{version.status} (primary)", version_id)
        self.store.delete(version_id)
        logger.info(f"Deleted version {version_id}")

    def update_item_status(self, version_id: str, item_id: str, status: str):
        """单独修改行状态（如标记 Cleared），锁定行也允许"""
        ItemStatus(status)
        version = self.get(version_id, "update item status of")
        if version.status == VersionStatus.ARCHIVED.value:
            raise InvalidTransitionError("update item status of", version.status, version_id)
        self.store.update_item_status(version_id, item_id, status)

    # ---- 变更通知 ----

    def handle_invalidation(self, case_id: str,
                            version_ids: Optional[Sequence[str]] = None) -> List[PlanVersion]:
        """外部记录变化：受影响的版本标记为 Out of Sync 并重新读取"""
        for version in self.versions(case_id):
            affected = (version.version_id in version_ids) if version_ids else (
                version.status == VersionStatus.DRAFT.value)
            if affected and version.sync_status != SyncStatus.OUT_OF_SYNC.value:
                self.store.update_version_status(version.version_id,
                                                 sync_status=SyncStatus.OUT_OF_SYNC.value)
                logger.info(f"Version {version.version_id} marked out of sync")
        return self.versions(case_id)

    # ---- 版本对比 ----

    def previous_version(self, version: PlanVersion) -> Optional[PlanVersion]:
        if not version.supersedes_id:
            return None
        return self.store.load_version(version.supersedes_id)

    def modified_sequence_numbers(self, version: PlanVersion) -> Set[int]:
        """相对上一版本有变化的行（按序号比较），没有上一版本时为空"""
        previous = self.previous_version(version)
        if previous is None:
            return set()
        before = {i.sequence_number: _row_key(i) for i in previous.items}
        return {i.sequence_number for i in version.items
                if before.get(i.sequence_number) != _row_key(i)}
