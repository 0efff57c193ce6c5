"""Match confidence classification for planning candidates.

Rules are evaluated in order and the first hit wins:

1. HIGH    ORG_NAME_MATCH+POSTCODE_MATCH     applicant organisation contains the
                                             company name and the site postcode
                                             is one of the company's postcodes
2. MEDIUM  PERSON_NAME_MATCH+POSTCODE_MATCH  found by a person-name search and
                                             the postcode matches
3. MEDIUM  ORG_NAME_FUZZY_MATCH              applicant organisation fuzzy-matches
                                             the company name
4. LOW     PERSON_NAME_MATCH                 found by a person-name search
5. LOW     WEAK_MATCH                        anything else

A rule 1 hit reached through a person-name search is reported as MEDIUM.
"""

import re
from typing import NamedTuple, Optional, Sequence

from prospect_gauntlet.matching.search_terms import normalize_postcode
from prospect_gauntlet.storage.models import CompanyProfile, MatchConfidence

ORG_NAME_MATCH_POSTCODE = "ORG_NAME_MATCH+POSTCODE_MATCH"
PERSON_NAME_MATCH_POSTCODE = "PERSON_NAME_MATCH+POSTCODE_MATCH"
ORG_NAME_FUZZY_MATCH = "ORG_NAME_FUZZY_MATCH"
PERSON_NAME_MATCH = "PERSON_NAME_MATCH"
WEAK_MATCH = "WEAK_MATCH"

FUZZY_WORD_MIN_LENGTH = 4
FUZZY_OVERLAP_RATIO = 0.5

_WHITESPACE = re.compile(r"\s+")


class MatchResult(NamedTuple):
    reason: str
    confidence: MatchConfidence


def _significant_words(text: str) -> set:
    return {
        word for word in _WHITESPACE.split(text.lower())
        if len(word) >= FUZZY_WORD_MIN_LENGTH
    }


def fuzzy_match(first: Optional[str], second: Optional[str]) -> bool:
    """Loose organisation-name comparison.

    Two names match when one contains the other (case-insensitive), or when
    at least half of the longer-than-three-character words of the name with
    fewer such words also appear in the other name.
    """
    first = (first or "").strip().lower()
    second = (second or "").strip().lower()
    if not first or not second:
        return False

    if first in second or second in first:
        return True

    words_first = _significant_words(first)
    words_second = _significant_words(second)
    if not words_first or not words_second:
        return False

    overlap = len(words_first & words_second)
    return overlap / min(len(words_first), len(words_second)) >= FUZZY_OVERLAP_RATIO


def postcode_matches(candidate_postcode: Optional[str], postcodes: Sequence[str]) -> bool:
    """Whitespace- and case-insensitive postcode membership test."""
    target = normalize_postcode(candidate_postcode)
    if not target:
        return False
    return any(normalize_postcode(pc) == target for pc in postcodes)


def classify(
    candidate,
    profile: CompanyProfile,
    search_terms: Sequence[str],
    postcodes: Sequence[str],
    is_person_search: bool = False,
) -> MatchResult:
    """Assign a match reason and confidence tier to a planning candidate.

    Args:
        candidate: Raw planning record exposing applicant_organisation and postcode
        profile: Company the candidate is being matched against
        search_terms: Terms that produced the candidate
        postcodes: Company postcodes
        is_person_search: Candidate came from an officer/PSC name search

    Returns:
        (reason, confidence)
    """
    organisation = (candidate.applicant_organisation or "").lower()
    company_name = (profile.company_name or "").strip().lower()
    has_postcode_match = postcode_matches(candidate.postcode, postcodes)

    if (
        organisation
        and company_name
        and company_name in organisation
        and has_postcode_match
    ):
        if is_person_search:
            return MatchResult(ORG_NAME_MATCH_POSTCODE, MatchConfidence.MEDIUM)
        return MatchResult(ORG_NAME_MATCH_POSTCODE, MatchConfidence.HIGH)

    if is_person_search and has_postcode_match:
        return MatchResult(PERSON_NAME_MATCH_POSTCODE, MatchConfidence.MEDIUM)

    if organisation and company_name and fuzzy_match(organisation, company_name):
        return MatchResult(ORG_NAME_FUZZY_MATCH, MatchConfidence.MEDIUM)

    if is_person_search:
        return MatchResult(PERSON_NAME_MATCH, MatchConfidence.LOW)

    return MatchResult(WEAK_MATCH, MatchConfidence.LOW)
