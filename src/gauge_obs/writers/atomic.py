"""
Atomic artifact output.

A group's artifact is either written completely or not at all: content
goes to a temporary file beside the target, which replaces the target
only after the writer finishes.
"""

import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

from gauge_obs.errors import IoFailure

logger = logging.getLogger(__name__)


@contextmanager
def atomic_output(path: Union[str, Path]) -> Iterator[Path]:
    """
    Yield a temporary path that is moved onto `path` on success.

    The temporary file is removed on every failure path. OSErrors are
    raised as IoFailure naming the final path.
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        os.close(fd)
        # mkstemp creates 0600 files
        os.chmod(tmp_name, 0o644)
    except OSError as e:
        raise IoFailure(path, e) from e

    tmp_path = Path(tmp_name)
    try:
        yield tmp_path
        os.replace(tmp_path, path)
    except OSError as e:
        raise IoFailure(path, e) from e
    finally:
        if tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError as e:
                logger.warning(f"Could not remove temporary file {tmp_path}: {e}")
