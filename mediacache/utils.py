from datetime import datetime, timezone


def year_from_date(date_str: str | None) -> int | None:
    """Extract a 4-digit year from an ISO-style date string ("2024-01-15")."""
    if not date_str:
        return None
    try:
        return int(date_str[:4])
    except ValueError:
        return None


def year_from_timestamp(ts: int | float | None) -> int | None:
    """Extract the year from a Unix timestamp in seconds (IGDB dates)."""
    if not ts:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).year


def normalize_query(query: str) -> str:
    """Collapse whitespace and trim a free-text query."""
    return " ".join(query.split())
