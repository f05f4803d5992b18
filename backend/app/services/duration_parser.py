import re
from typing import Optional

NUMBER = r"([0-9]+(?:\.[0-9]+)?)"

hour_pattern = re.compile(NUMBER + r"\s*(?:hour|hr|h)", re.IGNORECASE)
minute_pattern = re.compile(NUMBER + r"\s*(?:minute|min|m)", re.IGNORECASE)
number_pattern = re.compile(NUMBER)


def parse_duration(text: Optional[str]) -> int:
    """Total minutes in a free-text duration: "1h 30m" -> 90, "45 minutes" -> 45.

    Hour and minute amounts are searched for independently and each counts
    once. A bare number with no unit ("30") is read as minutes. Anything
    without a number, including None, is 0.
    """
    if not text:
        return 0

    total = 0.0
    hours = hour_pattern.search(text)
    if hours:
        total += float(hours.group(1)) * 60

    minutes = minute_pattern.search(text)
    if minutes:
        total += float(minutes.group(1))

    if total == 0:
        bare = number_pattern.search(text)
        if bare:
            total = float(bare.group(1))

    return int(round(total))
