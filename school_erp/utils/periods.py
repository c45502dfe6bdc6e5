from datetime import date, datetime
from typing import Tuple, Union

DAILY = "daily"
WEEKLY = "weekly"
MONTHLY = "monthly"


def bucket_key(value: Union[date, datetime], period: str) -> str:
    """
    Label the bucket a payment date falls into.
    Weeks follow the ISO calendar, so 2021-01-03 is in 2020-W53.
    """
    day = value.date() if isinstance(value, datetime) else value
    if period == DAILY:
        return day.isoformat()
    if period == WEEKLY:
        iso_year, iso_week, _ = day.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if period == MONTHLY:
        return f"{day.year}-{day.month:02d}"
    raise ValueError(f"Unknown period: {period}")


def academic_year_window(today: date) -> Tuple[str, date, date]:
    """April 1 to March 31 window containing today, labelled e.g. 2024-2025"""
    start_year = today.year if today.month >= 4 else today.year - 1
    return (
        f"{start_year}-{start_year + 1}",
        date(start_year, 4, 1),
        date(start_year + 1, 3, 31),
    )
