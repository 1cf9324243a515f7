"""Best-effort removal of ephemeral engine artifacts.

The engine leaves scratch directories named ``tmpclaude-<hex>-cwd`` in the
run's working directory.  They are removed after every run, whatever its
outcome.  Errors are logged and swallowed so cleanup never replaces the
run's real result.

Uses ``anyio.to_thread.run_sync`` for non-blocking file I/O.
"""

from __future__ import annotations

import logging
import re
import shutil
from functools import partial
from pathlib import Path

from anyio import to_thread

logger = logging.getLogger(__name__)

EPHEMERAL_DIR_PATTERN = re.compile(r"^tmpclaude-[a-f0-9]+-cwd$", re.IGNORECASE)


async def cleanup_ephemeral_dirs(cwd: str | Path) -> list[str]:
    """Remove matching scratch directories under *cwd*.  Returns removed names."""
    return await to_thread.run_sync(partial(_cleanup_sync, Path(cwd)))


# -- Sync helpers (run in thread pool) -----------------------------------------


def _cleanup_sync(cwd: Path) -> list[str]:
    try:
        entries = list(cwd.iterdir())
    except OSError:
        logger.debug("Cleanup: cannot scan %s", cwd, exc_info=True)
        return []

    removed: list[str] = []
    for entry in entries:
        if not EPHEMERAL_DIR_PATTERN.match(entry.name):
            continue
        try:
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
                removed.append(entry.name)
                logger.info("Cleanup: removed temp directory %s", entry.name)
        except OSError:
            logger.debug("Cleanup: failed to remove %s", entry, exc_info=True)
    return removed
