"""
Grid times are stored naive (wall-clock UTC). Client timestamps with an
offset ("...Z", "+02:00") are converted before they reach the engine.
"""
from datetime import datetime, timezone
from typing import Optional


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
