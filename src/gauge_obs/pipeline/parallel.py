"""
Per-group parallel execution.

Runs one task per group key on a thread pool and collects a result per
key. A failing group is recorded and logged; it never cancels or
corrupts the other groups, and successfully written artifacts are kept.
"""

import concurrent.futures
import logging
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple

from gauge_obs.errors import ObsPrepError

logger = logging.getLogger(__name__)


# Failures isolated to their group; anything else is a bug and propagates
GROUP_ERRORS = (ObsPrepError, OSError, ValueError, KeyError)


class GroupResult:
    """Result of one group task: a value or the exception it raised."""

    def __init__(self, key: Hashable, value: Any = None, error: Optional[Exception] = None):
        self.key = key
        self.value = value
        self.error = error

    @property
    def ok(self) -> bool:
        return self.error is None

    def __repr__(self) -> str:
        status = "ok" if self.ok else f"failed: {self.error}"
        return f"GroupResult({self.key!r}, {status})"


def _run_one(key: Hashable, func: Callable[[], Any]) -> GroupResult:
    try:
        return GroupResult(key, value=func())
    except GROUP_ERRORS as exc:
        logger.warning(f"Failed: {key}: {exc}")
        return GroupResult(key, error=exc)


def run_groups(
    tasks: List[Tuple[Hashable, Callable[[], Any]]],
    max_workers: int = 1,
    desc: str = "Writing"
) -> Dict[Hashable, GroupResult]:
    """
    Run group tasks, serially or on a ThreadPoolExecutor.

    Args:
        tasks: List of (group key, callable) tuples; keys must be unique
        max_workers: Worker threads; 1 or less runs serially
        desc: Description for logging

    Returns:
        Dict mapping group key to GroupResult, in task order
    """
    keys = [key for key, _ in tasks]
    if len(set(keys)) != len(keys):
        raise ValueError("Group keys must be unique")

    max_workers = min(max_workers, len(tasks))
    results: Dict[Hashable, GroupResult] = {}

    if max_workers <= 1:
        logger.info(f"{desc}: {len(tasks)} groups (serial)")
        for key, func in tasks:
            results[key] = _run_one(key, func)
    else:
        logger.info(f"{desc}: {len(tasks)} groups with {max_workers} workers")
        with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
            future_to_key = {
                executor.submit(_run_one, key, func): key for key, func in tasks
            }
            for future in concurrent.futures.as_completed(future_to_key):
                key = future_to_key[future]
                results[key] = future.result()

    n_failed = sum(1 for r in results.values() if not r.ok)
    if n_failed:
        logger.warning(f"{desc}: {n_failed} of {len(tasks)} groups failed")
    else:
        logger.info(f"{desc}: all {len(tasks)} groups completed")

    return {key: results[key] for key in keys}
