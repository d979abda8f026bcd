"""乐观更新：先改界面，记住旧值，服务端成功则提交，失败则回滚"""
from typing import Any, Dict, List, Tuple

_Entry = Tuple[Any, str, Any]


class TentativeChanges:
    def __init__(self):
        self._pending: Dict[str, List[_Entry]] = {}

    def apply(self, entity_id: str, target: Any, field: str, value: Any):
        self._pending.setdefault(entity_id, []).append((target, field, getattr(target, field)))
        setattr(target, field, value)

    def has_pending(self, entity_id: str) -> bool:
        return entity_id in self._pending

    def commit(self, entity_id: str):
        self._pending.pop(entity_id, None)

    def rollback(self, entity_id: str):
        # 逆序恢复，同一字段多次修改时回到最初的值
        for target, field, previous in reversed(self._pending.pop(entity_id, [])):
            setattr(target, field, previous)
