"""Small formatting helpers shared by controllers and views."""


def format_timer(millis: int) -> str:
    """Render milliseconds as ``mm:ss``; minutes keep counting past the hour."""
    total_seconds = max(int(millis), 0) // 1000
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"
