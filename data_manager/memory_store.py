"""内存版存储，接口与 ExcelPlanStore 一致，用于测试和页面会话"""
import copy
from typing import Dict, List, Optional

from config.constants import VersionStatus
from core.errors import InvalidTransitionError, PersistenceConflict, VersionNotFound
from data_manager.schema import PlanVersion, WireFee


class InMemoryPlanStore:
    def __init__(self):
        self._versions: Dict[str, PlanVersion] = {}
        self._fees: Dict[str, WireFee] = {}

    def load_versions(self, case_id: str) -> List[PlanVersion]:
        versions = [copy.deepcopy(v) for v in self._versions.values() if v.case_id == case_id]
        return sorted(versions, key=lambda v: v.version_number)

    def load_version(self, version_id: str) -> Optional[PlanVersion]:
        version = self._versions.get(version_id)
        return copy.deepcopy(version) if version is not None else None

    def save_version(self, version: PlanVersion):
        self._versions[version.version_id] = copy.deepcopy(version)

    def set_primary(self, version_id: str, expected_primary_id: Optional[str]):
        target = self._versions.get(version_id)
        if target is None:
            raise VersionNotFound("set primary", version_id)
        if target.status == VersionStatus.ARCHIVED.value:
            raise InvalidTransitionError("set primary", target.status, version_id)
        siblings = [v for v in self._versions.values() if v.case_id == target.case_id]
        current = next((v.version_id for v in siblings if v.is_primary), None)
        if current != expected_primary_id:
            raise PersistenceConflict(target.case_id, expected_primary_id, current)
        for v in siblings:
            v.is_primary = v.version_id == version_id

    def update_version_status(self, version_id: str, status: Optional[str] = None,
                              sync_status: Optional[str] = None):
        version = self._versions.get(version_id)
        if version is None:
            raise VersionNotFound("update", version_id)
        if status is not None:
            version.status = status
            if status == VersionStatus.ARCHIVED.value:
                version.is_primary = False
        if sync_status is not None:
            version.sync_status = sync_status

    def update_item_status(self, version_id: str, item_id: str, status: str):
        version = self._versions.get(version_id)
        item = None
        if version is not None:
            item = next((i for i in version.items if i.item_id == item_id), None)
        if item is None:
            raise VersionNotFound("update item status of", version_id)
        item.status = status

    def delete(self, version_id: str):
        self._versions.pop(version_id, None)

    def save_wire_fee(self, fee: WireFee):
        self._fees[fee.fee_id] = copy.deepcopy(fee)

    def load_wire_fees(self) -> List[WireFee]:
        return [copy.deepcopy(f) for f in self._fees.values()]

    def delete_wire_fee(self, fee_id: str) -> bool:
        return self._fees.pop(fee_id, None) is not None
