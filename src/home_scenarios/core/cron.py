"""
Day-of-week helpers for six-field cron expressions.

Expressions are "second minute hour day-of-month month day-of-week" and are
evaluated by croniter (with `second_at_beginning=True`). Day-of-week uses
0 = Sunday.
"""

from typing import List, Sequence, Tuple

DAY_NAMES: Tuple[str, ...] = (
    "sunday",
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
)


def day_numbers(day_names: Sequence[str]) -> List[int]:
    """
    Convert day names ("monday", ...) to cron day-of-week numbers.

    Raises:
        ValueError: On an unknown day name
    """
    numbers = []
    for name in day_names:
        key = name.strip().lower()
        if key not in DAY_NAMES:
            raise ValueError(f"Unknown day of week: {name}")
        numbers.append(DAY_NAMES.index(key))
    return sorted(set(numbers))


def weekday_field(day_names: Sequence[str]) -> str:
    """Build the day-of-week field; empty or all seven days give "*"."""
    numbers = day_numbers(day_names)
    if not numbers or len(numbers) == 7:
        return "*"
    return ",".join(str(n) for n in numbers)
