"""Derive registry search terms and postcodes from a company profile."""

from typing import Iterable, List, Optional

from prospect_gauntlet.storage.models import CompanyProfile


def normalize_postcode(postcode: Optional[str]) -> str:
    """Postcode with all whitespace removed, upper-cased."""
    return "".join((postcode or "").split()).upper()


def _distinct(values: Iterable[Optional[str]], key) -> List[str]:
    seen = set()
    result = []
    for value in values:
        value = (value or "").strip()
        if not value or key(value) in seen:
            continue
        seen.add(key(value))
        result.append(value)
    return result


def build_search_terms(profile: CompanyProfile) -> List[str]:
    """Company name first, then officer names, then controlling persons.

    Terms are distinct (case-insensitive); blanks are dropped.
    """
    return _distinct(
        [profile.company_name, *profile.officer_names, *profile.psc_names],
        key=str.casefold,
    )


def person_search_terms(profile: CompanyProfile) -> List[str]:
    """Officer and PSC names that are not also the company name."""
    company = (profile.company_name or "").strip().casefold()
    return [
        term for term in build_search_terms(profile)
        if term.casefold() != company
    ]


def extract_postcodes(profile: CompanyProfile) -> List[str]:
    """Registered office postcode followed by any charge postcodes.

    Deduplicated ignoring whitespace and case; the first spelling is kept.
    """
    return _distinct(
        [profile.registered_postcode, *profile.charge_postcodes],
        key=normalize_postcode,
    )
