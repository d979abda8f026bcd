import uuid
from datetime import datetime


def generate_version_id() -> str:
    return f"PV-{datetime.now().strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:4]}"


def generate_item_id() -> str:
    return f"SI-{datetime.now().strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:6]}"


def generate_wire_fee_id() -> str:
    return f"WF-{datetime.now().strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:4]}"
