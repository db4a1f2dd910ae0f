"""Composite keys and status storage shared by the data source entities.

Reachable is the common case, so ``status`` is only stored for pending and
error items; the attribute backs a sparse index.  Items read without a
``status`` are therefore reachable.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from workbench.db import CompositeKey
from workbench.errors import bad_request
from workbench.utils import utc_now_iso

ACCOUNT_KEY = CompositeKey("ACT#", "ACT#")
BUCKET_KEY = CompositeKey("ACT#", "BUK#")
APP_ROLE_KEY = CompositeKey("APP#", "APP#")


class ReachabilityStatus(str, Enum):
    """Reachability of a data source entity."""
    PENDING = "pending"
    ERROR = "error"
    REACHABLE = "reachable"


STATUS_VALUES = [s.value for s in ReachabilityStatus]


def from_db_item(item: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Strip the composite key and fill in the implicit reachable status."""
    if item is None:
        return None
    entity = {k: v for k, v in item.items() if k not in ("pk", "sk")}
    if not entity.get("status"):
        entity["status"] = ReachabilityStatus.REACHABLE.value
    return entity


def status_update(status: str, status_msg: Optional[str] = "") -> Tuple[Dict[str, Any], List[str]]:
    """Return the attributes to SET and REMOVE for a status change.

    Raises:
        ServiceError: ``bad_request`` for an unknown status
    """
    if status not in STATUS_VALUES:
        raise bad_request(f'A status of "{status}" is not allowed', safe=True)

    item: Dict[str, Any] = {"status_at": utc_now_iso()}
    remove: List[str] = []
    if status == ReachabilityStatus.REACHABLE.value:
        remove.append("status")
    else:
        item["status"] = status
    if status_msg:
        item["status_msg"] = status_msg
    else:
        remove.append("status_msg")
    return item, remove
