"""
Human-readable sizes and durations for log lines and the run summary.
"""

_SIZE_UNITS = ("B", "KB", "MB", "GB")


def format_size(bytes_size: int) -> str:
    """'0 B', '812 B', '4.7 MB'. Whole bytes are shown without a decimal."""
    if bytes_size <= 0:
        return "0 B"
    size = float(bytes_size)
    for unit in _SIZE_UNITS[:-1]:
        if size < 1024:
            break
        size /= 1024
    else:
        unit = _SIZE_UNITS[-1]
    if unit == "B":
        return f"{int(size)} B"
    return f"{size:.1f} {unit}"


def format_duration(seconds: float) -> str:
    """Clock-style elapsed time: '0:07', '3:05', '1:02:09'."""
    total = max(int(seconds), 0)
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
