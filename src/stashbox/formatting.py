import math
from datetime import datetime
from typing import Optional

_SIZE_UNITS = ["Bytes", "KB", "MB", "GB"]


def format_file_size(size_bytes: int) -> str:
    if size_bytes <= 0:
        return "0 Bytes"
    exponent = 0
    while exponent < len(_SIZE_UNITS) - 1 and size_bytes >= 1024 ** (exponent + 1):
        exponent += 1
    value = math.floor(size_bytes / 1024**exponent * 100 + 0.5) / 100
    return f"{value:g} {_SIZE_UNITS[exponent]}"


def format_date(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return f"{value:%b} {value.day}, {value.year}"
