"""Cache validity for rendered artifacts.

Artifacts are plain files next to their sources; the only metadata consulted
is the file modification time.
"""

from __future__ import annotations

import os
from datetime import datetime
from typing import TYPE_CHECKING

from mmd.config import StalenessPolicy
from mmd.errors import ArtifactStatError

if TYPE_CHECKING:
    from pathlib import Path


def start_of_today(now: float | None = None) -> float:
    """Timestamp of local midnight at the start of the current day.

    Args:
        now: POSIX timestamp to take "today" from (defaults to the clock)

    Returns:
        POSIX timestamp of 00:00 local time on that day
    """
    moment = datetime.fromtimestamp(now) if now is not None else datetime.now()
    midnight = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.timestamp()


def artifact_mtime(artifact: Path) -> float | None:
    """Modification time of ``artifact``, or None when it does not exist.

    Raises:
        ArtifactStatError: If the artifact exists but cannot be inspected
    """
    try:
        return os.stat(artifact).st_mtime
    except (FileNotFoundError, NotADirectoryError):
        return None
    except OSError as e:
        raise ArtifactStatError(f"Cannot stat {artifact.name}: {e}") from e


def is_stale(
    source_mtime: float,
    artifact: Path,
    policy: StalenessPolicy = StalenessPolicy.MTIME,
    now: float | None = None,
) -> bool:
    """Decide whether ``artifact`` must be rendered again.

    The caller has already established that the source exists.

    Policies:
        mtime: stale when missing or older than the source
        daily: also stale when rendered before today's local midnight, so
            every diagram is rebuilt at most once a day even if its source
            did not change (picks up renderer upgrades and theme changes)

    Args:
        source_mtime: Modification time of the source document
        artifact: Rendered artifact path
        policy: Staleness policy
        now: Clock override for the daily policy

    Returns:
        True if the artifact must be rebuilt
    """
    mtime = artifact_mtime(artifact)
    if mtime is None:
        return True
    if mtime < source_mtime:
        return True
    return policy == StalenessPolicy.DAILY and mtime < start_of_today(now)
