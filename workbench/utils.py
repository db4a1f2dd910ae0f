"""Small helpers shared by the data source services."""

from __future__ import annotations

import datetime as dt
import logging
import posixpath
import secrets
import string
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Iterable, List, Optional, Sequence, TypeVar

from botocore.exceptions import ClientError

LOGGER = logging.getLogger("workbench.utils")

T = TypeVar("T")
R = TypeVar("R")

ID_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase
ID_LENGTH = 22


def generate_id(length: int = ID_LENGTH) -> str:
    """Return a random identifier drawn from ``0-9A-Za-z``."""
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))


def utc_now_iso() -> str:
    return dt.datetime.utcnow().isoformat() + "Z"


def chunks(items: Sequence[T], size: int) -> Iterable[Sequence[T]]:
    if size < 1:
        raise ValueError(f"batch size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield items[start:start + size]


def process_in_batches(
    items: Iterable[T],
    batch_size: int,
    fn: Callable[[T], R],
) -> List[R]:
    """Apply ``fn`` to every item, ``batch_size`` items at a time.

    Batches run one after another; the items inside a batch run in parallel.
    The first exception raised by ``fn`` propagates once its batch finishes.

    Args:
        items: Items to process
        batch_size: Maximum number of concurrent calls
        fn: Function applied to each item

    Returns:
        Results in input order
    """
    items = list(items)
    results: List[R] = []
    if not items:
        return results

    with ThreadPoolExecutor(max_workers=min(batch_size, len(items))) as executor:
        for batch in chunks(items, batch_size):
            futures = [executor.submit(fn, item) for item in batch]
            results.extend(future.result() for future in futures)
    return results


def normalize_study_folder(folder: str) -> str:
    """Normalize a study folder to a relative prefix ending with ``/``.

    ``..`` and ``.`` components are resolved, the bucket root is ``/``.

    >>> normalize_study_folder("/a/b/../c")
    'a/c/'
    >>> normalize_study_folder("/")
    '/'
    """
    normalized = posixpath.normpath("/" + (folder or ""))
    if normalized in ("/", "//"):
        return "/"
    return normalized.lstrip("/") + "/"


def is_conditional_check_failure(error: BaseException) -> bool:
    return (
        isinstance(error, ClientError)
        and error.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"
    )


def run_and_catch(fn: Callable[[], R], handler: Callable[[], Any]) -> Optional[R]:
    """Run ``fn``; if DynamoDB rejects its condition, return ``handler()`` instead.

    Any other error propagates.
    """
    try:
        return fn()
    except ClientError as e:
        if not is_conditional_check_failure(e):
            raise
        LOGGER.debug("Conditional check failed: %s", e)
        return handler()
