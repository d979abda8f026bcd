import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from config.constants import (
    SHEET_PLAN_VERSIONS, SHEET_SCHEDULE_ITEMS, SHEET_WIRE_FEES, SHEET_CONFIG,
    PLAN_VERSIONS_COLUMNS, SCHEDULE_ITEMS_COLUMNS, WIRE_FEES_COLUMNS, CONFIG_COLUMNS,
    POLICY_KEYS, VersionStatus,
)
from config.settings import EXCEL_FILE, BACKUP_KEEP
from core.errors import InvalidTransitionError, PersistenceConflict, VersionNotFound
from data_manager.schema import PlanVersion, ScheduleItem, WireFee

logger = logging.getLogger(__name__)


def init_excel(filepath: Path = EXCEL_FILE):
    """初始化 Excel 文件，创建所有 Sheet 和表头（策略配置需显式写入）"""
    filepath.parent.mkdir(parents=True, exist_ok=True)
    if filepath.exists():
        return

    with pd.ExcelWriter(filepath, engine="openpyxl") as writer:
        pd.DataFrame(columns=PLAN_VERSIONS_COLUMNS).to_excel(
            writer, sheet_name=SHEET_PLAN_VERSIONS, index=False)
        pd.DataFrame(columns=SCHEDULE_ITEMS_COLUMNS).to_excel(
            writer, sheet_name=SHEET_SCHEDULE_ITEMS, index=False)
        pd.DataFrame(columns=WIRE_FEES_COLUMNS).to_excel(
            writer, sheet_name=SHEET_WIRE_FEES, index=False)
        pd.DataFrame(columns=CONFIG_COLUMNS).to_excel(
            writer, sheet_name=SHEET_CONFIG, index=False)
    logger.info(f"Initialized workbook {filepath}")


def backup_excel(filepath: Path = EXCEL_FILE):
    """写入前自动备份"""
    if filepath.exists():
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        backup_path = filepath.with_suffix(f".xlsx.bak_{ts}")
        shutil.copy2(filepath, backup_path)
        backups = sorted(filepath.parent.glob(f"{filepath.stem}.xlsx.bak_*"))
        for old in backups[:-BACKUP_KEEP]:
            old.unlink()


def read_sheet(sheet_name: str, filepath: Path = EXCEL_FILE) -> pd.DataFrame:
    """读取指定 Sheet"""
    init_excel(filepath)
    try:
        df = pd.read_excel(filepath, sheet_name=sheet_name, engine="openpyxl")
    except ValueError:
        df = pd.DataFrame()
    return df


def write_sheet(df: pd.DataFrame, sheet_name: str, filepath: Path = EXCEL_FILE):
    """写入指定 Sheet（覆盖该 Sheet，保留其他 Sheet）"""
    init_excel(filepath)
    backup_excel(filepath)

    from openpyxl import load_workbook
    wb = load_workbook(filepath)

    if sheet_name in wb.sheetnames:
        del wb[sheet_name]
    wb.save(filepath)

    with pd.ExcelWriter(filepath, engine="openpyxl", mode="a", if_sheet_exists="replace") as writer:
        df.to_excel(writer, sheet_name=sheet_name, index=False)


def _append(df: pd.DataFrame, records: List[dict], columns: List[str]) -> pd.DataFrame:
    new_rows = pd.DataFrame(records, columns=columns)
    if df.empty:
        return new_rows
    return pd.concat([df, new_rows], ignore_index=True)


# ---- 方案版本 ----

def get_all_versions(filepath: Path = EXCEL_FILE) -> pd.DataFrame:
    df = read_sheet(SHEET_PLAN_VERSIONS, filepath)
    if not df.empty:
        df["case_id"] = df["case_id"].astype(str)
        df["version_id"] = df["version_id"].astype(str)
    return df


def get_version_items(version_id: str, filepath: Path = EXCEL_FILE) -> pd.DataFrame:
    df = read_sheet(SHEET_SCHEDULE_ITEMS, filepath)
    if df.empty:
        return df
    return df[df["version_id"].astype(str) == version_id].reset_index(drop=True)


def save_version_record(record: dict, items: List[dict], filepath: Path = EXCEL_FILE):
    """保存版本（按 version_id 覆盖）及其全部明细"""
    df = get_all_versions(filepath)
    if not df.empty:
        df = df[df["version_id"] != record["version_id"]]
    write_sheet(_append(df, [record], PLAN_VERSIONS_COLUMNS), SHEET_PLAN_VERSIONS, filepath)

    idf = read_sheet(SHEET_SCHEDULE_ITEMS, filepath)
    if not idf.empty:
        idf = idf[idf["version_id"].astype(str) != record["version_id"]]
    write_sheet(_append(idf, items, SCHEDULE_ITEMS_COLUMNS), SHEET_SCHEDULE_ITEMS, filepath)


def update_version_fields(version_id: str, fields: dict, filepath: Path = EXCEL_FILE):
    df = get_all_versions(filepath)
    mask = df["version_id"] == version_id if not df.empty else None
    if mask is None or not mask.any():
        raise VersionNotFound("update", version_id)
    for col, value in fields.items():
        df.loc[mask, col] = value
    write_sheet(df, SHEET_PLAN_VERSIONS, filepath)


def delete_version_records(version_id: str, filepath: Path = EXCEL_FILE):
    df = get_all_versions(filepath)
    if not df.empty:
        write_sheet(df[df["version_id"] != version_id], SHEET_PLAN_VERSIONS, filepath)
    idf = read_sheet(SHEET_SCHEDULE_ITEMS, filepath)
    if not idf.empty:
        idf = idf[idf["version_id"].astype(str) != version_id]
        write_sheet(idf, SHEET_SCHEDULE_ITEMS, filepath)


def update_item_status_record(version_id: str, item_id: str, status: str, filepath: Path = EXCEL_FILE):
    df = read_sheet(SHEET_SCHEDULE_ITEMS, filepath)
    mask = (df["version_id"].astype(str) == version_id) & (df["item_id"].astype(str) == item_id)
    if not mask.any():
        raise VersionNotFound("update item status of", version_id)
    df.loc[mask, "status"] = status
    write_sheet(df, SHEET_SCHEDULE_ITEMS, filepath)


# ---- 电汇费用 ----

def get_wire_fees(filepath: Path = EXCEL_FILE) -> pd.DataFrame:
    return read_sheet(SHEET_WIRE_FEES, filepath)


def save_wire_fee_record(record: dict, filepath: Path = EXCEL_FILE):
    df = get_wire_fees(filepath)
    write_sheet(_append(df, [record], WIRE_FEES_COLUMNS), SHEET_WIRE_FEES, filepath)


def delete_wire_fee_record(fee_id: str, filepath: Path = EXCEL_FILE) -> bool:
    df = get_wire_fees(filepath)
    if df.empty or fee_id not in df["fee_id"].astype(str).values:
        return False
    write_sheet(df[df["fee_id"].astype(str) != fee_id], SHEET_WIRE_FEES, filepath)
    return True


# ---- 系统配置 ----

def get_config(key: str, filepath: Path = EXCEL_FILE) -> Optional[str]:
    df = read_sheet(SHEET_CONFIG, filepath)
    if df.empty:
        return None
    match = df[df["key"] == key]
    if match.empty:
        return None
    return str(match.iloc[0]["value"])


def get_all_config(filepath: Path = EXCEL_FILE) -> pd.DataFrame:
    """获取所有系统配置"""
    return read_sheet(SHEET_CONFIG, filepath)


def set_config(key: str, value: str, description: str = "", filepath: Path = EXCEL_FILE):
    df = read_sheet(SHEET_CONFIG, filepath)
    now = datetime.now().isoformat()
    if not df.empty and key in df["key"].values:
        df.loc[df["key"] == key, "value"] = value
        df.loc[df["key"] == key, "updated_at"] = now
        if description:
            df.loc[df["key"] == key, "description"] = description
    else:
        df = _append(df, [{
            "key": key, "value": value,
            "description": description, "updated_at": now,
        }], CONFIG_COLUMNS)
    write_sheet(df, SHEET_CONFIG, filepath)


def seed_policy_config(values: Dict[str, float], filepath: Path = EXCEL_FILE):
    """一次性写入运营方提供的策略配置"""
    unknown = sorted(set(values) - set(POLICY_KEYS))
    if unknown:
        raise KeyError(f"Unknown policy keys: {', '.join(unknown)}")
    now = datetime.now().isoformat()
    df = read_sheet(SHEET_CONFIG, filepath)
    if not df.empty:
        df = df[~df["key"].isin(list(values))]
    rows = [{"key": k, "value": str(v), "description": POLICY_KEYS[k], "updated_at": now}
            for k, v in values.items()]
    write_sheet(_append(df, rows, CONFIG_COLUMNS), SHEET_CONFIG, filepath)
    logger.info(f"Seeded {len(rows)} policy values into {filepath}")


class ExcelPlanStore:
    """基于 Excel 的版本存储，实现版本管理所需的持久化接口"""

    def __init__(self, filepath: Path = EXCEL_FILE):
        self.filepath = Path(filepath)
        init_excel(self.filepath)

    def _build(self, record: dict) -> PlanVersion:
        idf = get_version_items(record["version_id"], self.filepath)
        items = [ScheduleItem.from_record(r) for r in idf.to_dict("records")]
        return PlanVersion.from_record(record, items)

    def load_versions(self, case_id: str) -> List[PlanVersion]:
        df = get_all_versions(self.filepath)
        if df.empty:
            return []
        rows = df[df["case_id"] == str(case_id)].to_dict("records")
        versions = [self._build(r) for r in rows]
        return sorted(versions, key=lambda v: v.version_number)

    def load_version(self, version_id: str) -> Optional[PlanVersion]:
        df = get_all_versions(self.filepath)
        if df.empty:
            return None
        match = df[df["version_id"] == version_id]
        if match.empty:
            return None
        return self._build(match.iloc[0].to_dict())

    def save_version(self, version: PlanVersion):
        save_version_record(
            version.to_record(),
            [item.to_record(version.version_id) for item in version.items],
            self.filepath,
        )
        logger.debug(f"Saved version {version.version_id} ({len(version.items)} items)")

    def set_primary(self, version_id: str, expected_primary_id: Optional[str]):
        df = get_all_versions(self.filepath)
        match = df[df["version_id"] == version_id] if not df.empty else df
        if match.empty:
            raise VersionNotFound("set primary", version_id)
        row = match.iloc[0]
        if row["status"] == VersionStatus.ARCHIVED.value:
            raise InvalidTransitionError("set primary", row["status"], version_id)
        case_mask = df["case_id"] == row["case_id"]
        current = df[case_mask & (df["is_primary"] == True)]  # noqa: E712
        current_id = str(current.iloc[0]["version_id"]) if not current.empty else None
        if current_id != expected_primary_id:
            raise PersistenceConflict(str(row["case_id"]), expected_primary_id, current_id)
        df.loc[case_mask, "is_primary"] = False
        df.loc[df["version_id"] == version_id, "is_primary"] = True
        write_sheet(df, SHEET_PLAN_VERSIONS, self.filepath)

    def update_version_status(self, version_id: str, status: Optional[str] = None,
                              sync_status: Optional[str] = None):
        fields = {}
        if status is not None:
            fields["status"] = status
            if status == VersionStatus.ARCHIVED.value:
                fields["is_primary"] = False
        if sync_status is not None:
            fields["sync_status"] = sync_status
        if fields:
            update_version_fields(version_id, fields, self.filepath)

    def update_item_status(self, version_id: str, item_id: str, status: str):
        update_item_status_record(version_id, item_id, status, self.filepath)

    def delete(self, version_id: str):
        delete_version_records(version_id, self.filepath)

    def save_wire_fee(self, fee: WireFee):
        save_wire_fee_record(fee.to_record(), self.filepath)

    def load_wire_fees(self) -> List[WireFee]:
        df = get_wire_fees(self.filepath)
        if df.empty:
            return []
        return [WireFee.from_record(r) for r in df.to_dict("records")]

    def delete_wire_fee(self, fee_id: str) -> bool:
        return delete_wire_fee_record(fee_id, self.filepath)
