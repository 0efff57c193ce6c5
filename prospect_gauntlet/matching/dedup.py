"""Collapse land/property results gathered by several lookups."""

from typing import Iterable, List

from prospect_gauntlet.collectors.records import LandPropertyTitle


def dedupe_titles(titles: Iterable[LandPropertyTitle]) -> List[LandPropertyTitle]:
    """One title per title number, first occurrence wins.

    Titles without a title number are discarded.
    """
    seen = set()
    unique = []
    for title in titles:
        if not title.title_number or title.title_number in seen:
            continue
        seen.add(title.title_number)
        unique.append(title)
    return unique
