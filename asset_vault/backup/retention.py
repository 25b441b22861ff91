"""Keep only the newest archived backups."""

from typing import Awaitable, Callable, Iterable, List

from .._utils import logger
from .models import ArchivedBackup


async def enforce_retention(
    list_archived: Callable[[], Awaitable[List[ArchivedBackup]]],
    delete_archived: Callable[[str], Awaitable[bool]],
    keep: int,
    protect: Iterable[str] = (),
) -> List[str]:
    """Delete all but the ``keep`` most recent archives.

    Only names returned by ``list_archived`` are ever deleted, and never a
    name in ``protect``. A failed delete is logged and the pass continues.

    Args:
        list_archived: Lists the archives currently in storage
        delete_archived: Deletes one archive by name
        keep: Number of archives to keep
        protect: Names that must survive regardless of age

    Returns:
        Names that were deleted
    """
    if keep < 0:
        raise ValueError(f"keep must not be negative, got {keep}")

    protected = set(protect)
    archives = sorted(await list_archived(), key=lambda a: a.created_at, reverse=True)
    expired = [a for a in archives[keep:] if a.name not in protected]

    if not expired:
        logger.debug(f"Retention: {len(archives)} archives, nothing to delete (keep {keep})")
        return []

    deleted = []
    for archive in expired:
        try:
            if await delete_archived(archive.name):
                deleted.append(archive.name)
            else:
                logger.warning(f"Retention: {archive.name} was already gone")
        except Exception as e:
            logger.warning(f"Retention: failed to delete {archive.name}: {e}")

    logger.info(f"Retention: deleted {len(deleted)} old backups, keeping {keep}")
    return deleted
