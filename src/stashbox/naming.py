import time
from typing import Callable, Collection


def epoch_millis() -> int:
    return time.time_ns() // 1_000_000


def split_extension(filename: str) -> tuple[str, str]:
    """Split ``report.tar.gz`` into ``("report.tar", ".gz")``.

    A leading dot alone (``.bashrc``) does not start an extension.
    """
    dot = filename.rfind(".")
    if dot <= 0:
        return filename, ""
    return filename[:dot], filename[dot:]


def resolve(
    desired: str,
    existing: Collection[str],
    clock: Callable[[], int] = epoch_millis,
) -> str:
    """Return the name an upload should be stored under.

    Names that are free are kept as-is. Taken names get a millisecond
    timestamp inserted before the extension, bumped until it is free.
    """
    if desired not in existing:
        return desired

    base, ext = split_extension(desired)
    stamp = clock()
    candidate = f"{base}_{stamp}{ext}"
    while candidate in existing:
        stamp += 1
        candidate = f"{base}_{stamp}{ext}"
    return candidate
