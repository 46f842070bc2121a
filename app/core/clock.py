from datetime import date, datetime, timezone


def utc_now() -> datetime:
    """Current UTC time as a naive datetime for database storage"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utc_now().date()
