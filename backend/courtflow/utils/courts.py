"""
Court label helpers for bulk court creation.

Accepts both string ("1,5,6") and list (["1","5","6"]) inputs so labels are
never split character by character (list("1,5,6") -> ['1', ',', '5', ...]).
"""
from typing import Iterable, List, Optional, Union


def parse_court_names(court_names: Optional[Union[str, List[str]]]) -> List[str]:
    """
    Normalize court_names to a list of non-empty, de-duplicated labels.

    - None or "" -> []
    - String (e.g. "1,5,6") -> split on commas, strip whitespace, drop empties -> ["1","5","6"]
    - List (e.g. ["1","5","6"]) -> coerce each to str(x).strip(), drop empties
    - First occurrence wins for repeated labels
    """
    if court_names is None:
        return []
    if isinstance(court_names, str):
        raw = court_names.split(",")
    elif isinstance(court_names, list):
        raw = [str(x) for x in court_names]
    else:
        return []

    labels: List[str] = []
    for item in raw:
        label = item.strip()
        if label and label not in labels:
            labels.append(label)
    return labels


def numbered_court_labels(count: int, existing: Iterable[str] = (), prefix: str = "Court") -> List[str]:
    """
    Generate ``count`` labels "Court 1", "Court 2", ... skipping labels already in use.
    """
    taken = set(existing)
    labels: List[str] = []
    n = 1
    while len(labels) < count:
        label = f"{prefix} {n}"
        if label not in taken:
            labels.append(label)
        n += 1
    return labels
