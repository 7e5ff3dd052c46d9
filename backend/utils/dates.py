import calendar
from datetime import datetime, timezone
from typing import Any, Optional

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def add_months(start: datetime, months: int) -> datetime:
    """
    Ajoute un nombre de mois calendaires.
    Le jour est borné au dernier jour du mois cible (31 janv. + 1 mois => 28/29 févr.).
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)

def parse_timestamp(value: Any) -> Optional[datetime]:
    """Lit un timestamp Postgres/ISO (str ou datetime); None si absent ou illisible."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
