from datetime import datetime
from typing import Optional
import pytz
from app.config import settings

def get_timezone():
    """Timezone used for every timestamp the service records"""
    return pytz.timezone(settings.timezone)

def get_local_time():
    """Get current time in the configured timezone"""
    return datetime.now(get_timezone())

def ensure_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach the configured timezone to naive datetimes coming from storage"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return get_timezone().localize(dt)
    return dt.astimezone(get_timezone())

def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO timestamp (as returned by Supabase) into an aware datetime"""
    if value is None or isinstance(value, datetime):
        return ensure_aware(value)
    return ensure_aware(datetime.fromisoformat(value.replace('Z', '+00:00')))

def seconds_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds()
