#!/usr/bin/env python3
"""
Risk code generation: [PROJECT_ACRONYM]-R-[SEQUENTIAL], e.g. BID-R-001.
"""

import re
from datetime import datetime
from typing import Callable, Iterable, Optional

from core.logging import get_logger

logger = get_logger(__name__)

_SEQUENTIAL_SUFFIX = re.compile(r"-R-(\d+)$")
MAX_ACRONYM_LENGTH = 4


def generate_project_acronym(project_name: Optional[str]) -> str:
    """First letter of each word, upper-cased, at most four characters"""
    if not project_name:
        return ""
    return "".join(word[0].upper() for word in project_name.split())[:MAX_ACRONYM_LENGTH]


def next_risk_sequential(codes: Iterable[Optional[str]]) -> int:
    sequentials = []
    for code in codes:
        match = _SEQUENTIAL_SUFFIX.search(code or "")
        if match and int(match.group(1)) > 0:
            sequentials.append(int(match.group(1)))
    return max(sequentials) + 1 if sequentials else 1


def format_risk_code(acronym: str, sequential: int) -> str:
    return f"{acronym}-R-{sequential:03d}"


def generate_unique_risk_code(project_name: Optional[str], existing_codes: Iterable[str],
                              max_attempts: int = 10,
                              now: Optional[Callable[[], datetime]] = None) -> str:
    """
    Next free code for a project.
    existing_codes holds every code already in use; the sequential starts after
    the highest one carrying this project's acronym. When max_attempts
    candidates are all taken, the last six digits of the current millisecond
    timestamp are used instead.
    """
    acronym = generate_project_acronym(project_name)
    if not acronym:
        return ""

    taken = set(existing_codes)
    prefix = f"{acronym}-R-"
    sequential = next_risk_sequential(code for code in taken if code.startswith(prefix))

    for attempt in range(max_attempts):
        candidate = format_risk_code(acronym, sequential + attempt)
        if candidate not in taken:
            return candidate

    clock = now or datetime.now
    timestamp = str(int(clock().timestamp() * 1000))[-6:]
    fallback = f"{prefix}{timestamp}"
    logger.warning("risk_code_timestamp_fallback", code=fallback, attempts=max_attempts)
    return fallback
