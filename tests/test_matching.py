"""
Search term derivation, match classification and title deduplication tests.
"""

import pytest

from prospect_gauntlet.matching.confidence import (
    ORG_NAME_FUZZY_MATCH,
    ORG_NAME_MATCH_POSTCODE,
    PERSON_NAME_MATCH,
    PERSON_NAME_MATCH_POSTCODE,
    WEAK_MATCH,
    classify,
    fuzzy_match,
    postcode_matches,
)
from prospect_gauntlet.matching.dedup import dedupe_titles
from prospect_gauntlet.matching.search_terms import (
    build_search_terms,
    extract_postcodes,
    normalize_postcode,
    person_search_terms,
)
from prospect_gauntlet.storage.models import CompanyProfile, MatchConfidence, PropertyDataset
from tests.conftest import land_title, planning_app


@pytest.mark.unit
class TestSearchTerms:
    """Test search term and postcode extraction."""

    def test_company_name_comes_first(self, acme_profile):
        terms = build_search_terms(acme_profile)

        assert terms == ["Acme Developments Ltd", "Jane Smith", "John Brown"]

    def test_terms_are_distinct_case_insensitively(self):
        profile = CompanyProfile(
            company_number="1",
            company_name="Acme Ltd",
            officer_names=("Jane Smith", "JANE SMITH", "  ", ""),
            psc_names=("jane smith", "Bob Jones"),
        )

        assert build_search_terms(profile) == ["Acme Ltd", "Jane Smith", "Bob Jones"]

    def test_person_terms_exclude_company_name(self):
        profile = CompanyProfile(
            company_number="1",
            company_name="Smith Holdings",
            psc_names=("smith holdings", "Ann Smith"),
        )

        assert person_search_terms(profile) == ["Ann Smith"]

    def test_postcodes_registered_first_then_charges(self, acme_profile):
        assert extract_postcodes(acme_profile) == ["SW1A 1AA", "M1 1AE"]

    def test_postcodes_deduplicated_ignoring_spacing(self):
        profile = CompanyProfile(
            company_number="1",
            company_name="Acme",
            registered_postcode="sw1a 1aa",
            charge_postcodes=("SW1A1AA", None, "", "E1 6AN"),
        )

        assert extract_postcodes(profile) == ["sw1a 1aa", "E1 6AN"]

    def test_no_postcodes(self):
        profile = CompanyProfile(company_number="1", company_name="Acme")

        assert extract_postcodes(profile) == []

    def test_normalize_postcode(self):
        assert normalize_postcode(" sw1a  1aa ") == "SW1A1AA"
        assert normalize_postcode(None) == ""


@pytest.mark.unit
class TestClassify:
    """Test match reason and confidence assignment."""

    def test_org_name_and_postcode_is_high(self, acme_profile):
        candidate = planning_app("APP/1", "Acme Developments Ltd", "SW1A1AA")

        reason, confidence = classify(
            candidate, acme_profile, build_search_terms(acme_profile),
            extract_postcodes(acme_profile),
        )

        assert reason == ORG_NAME_MATCH_POSTCODE
        assert confidence == MatchConfidence.HIGH

    def test_person_search_with_postcode_is_medium(self, acme_profile):
        candidate = planning_app("APP/2", "Smith Family Trust", "SW1A 1AA")

        result = classify(
            candidate, acme_profile, ["Jane Smith"],
            extract_postcodes(acme_profile), is_person_search=True,
        )

        assert result == (PERSON_NAME_MATCH_POSTCODE, MatchConfidence.MEDIUM)

    def test_org_match_through_person_search_is_downgraded(self, acme_profile):
        candidate = planning_app("APP/3", "Acme Developments Ltd", "SW1A 1AA")

        result = classify(
            candidate, acme_profile, ["Jane Smith"],
            extract_postcodes(acme_profile), is_person_search=True,
        )

        assert result == (ORG_NAME_MATCH_POSTCODE, MatchConfidence.MEDIUM)

    def test_org_name_without_postcode_is_fuzzy_medium(self, acme_profile):
        candidate = planning_app("APP/4", "ACME DEVELOPMENTS LTD", "LS1 4AP")

        result = classify(candidate, acme_profile, [], extract_postcodes(acme_profile))

        assert result == (ORG_NAME_FUZZY_MATCH, MatchConfidence.MEDIUM)

    def test_word_overlap_is_fuzzy_medium(self, acme_profile):
        candidate = planning_app("APP/5", "Acme Developments (North) Limited", None)

        result = classify(candidate, acme_profile, [], [])

        assert result == (ORG_NAME_FUZZY_MATCH, MatchConfidence.MEDIUM)

    def test_person_search_without_postcode_is_low(self, acme_profile):
        candidate = planning_app("APP/6", "Unrelated Builders", "LS1 4AP")

        result = classify(
            candidate, acme_profile, ["Jane Smith"],
            extract_postcodes(acme_profile), is_person_search=True,
        )

        assert result == (PERSON_NAME_MATCH, MatchConfidence.LOW)

    def test_anything_else_is_weak(self, acme_profile):
        candidate = planning_app("APP/7", None, "LS1 4AP")

        result = classify(candidate, acme_profile, [], extract_postcodes(acme_profile))

        assert result == (WEAK_MATCH, MatchConfidence.LOW)

    def test_postcode_only_match_from_company_search_is_weak(self, acme_profile):
        candidate = planning_app("APP/8", "Other Homes", "SW1A 1AA")

        result = classify(candidate, acme_profile, [], extract_postcodes(acme_profile))

        assert result == (WEAK_MATCH, MatchConfidence.LOW)

    def test_classification_is_repeatable(self, acme_profile):
        candidate = planning_app("APP/9", "Acme Developments Ltd", "SW1A1AA")
        args = (candidate, acme_profile, ["Acme Developments Ltd"], ["SW1A 1AA"])

        assert classify(*args) == classify(*args)


@pytest.mark.unit
class TestFuzzyMatch:
    """Test organisation name comparison."""

    def test_substring_either_way(self):
        assert fuzzy_match("acme developments ltd", "acme developments")
        assert fuzzy_match("acme developments", "acme developments ltd")

    def test_symmetric(self):
        pairs = [
            ("Acme Developments Ltd", "Northern Acme Developments Group"),
            ("Acme Homes", "Brick Lane Estates"),
            ("Riverside Property Holdings", "Holdings Riverside"),
        ]
        for first, second in pairs:
            assert fuzzy_match(first, second) == fuzzy_match(second, first)

    def test_short_words_ignored(self):
        assert not fuzzy_match("ab ltd co", "xy ltd co plc")

    def test_blank_never_matches(self):
        assert not fuzzy_match("", "Acme")
        assert not fuzzy_match("Acme", None)

    def test_insufficient_overlap(self):
        assert not fuzzy_match("Acme Developments Limited", "Zenith Estates Limited")

    def test_postcode_matches_ignores_spacing_and_case(self):
        assert postcode_matches("sw1a1aa", ["SW1A 1AA"])
        assert not postcode_matches("SW1A 1AB", ["SW1A 1AA"])
        assert not postcode_matches(None, ["SW1A 1AA"])
        assert not postcode_matches("", [""])


@pytest.mark.unit
class TestDedupeTitles:
    """Test title number deduplication."""

    def test_first_occurrence_wins(self):
        first = land_title("NGL1", postcode="E1 6AN")
        second = land_title("NGL1", postcode="N1 9GU",
                            dataset=PropertyDataset.OVERSEAS_COMPANIES)

        result = dedupe_titles([first, second, land_title("NGL2")])

        assert [t.title_number for t in result] == ["NGL1", "NGL2"]
        assert result[0].postcode == "E1 6AN"

    def test_titles_without_number_dropped(self):
        result = dedupe_titles([land_title(None), land_title("NGL3")])

        assert [t.title_number for t in result] == ["NGL3"]

    def test_idempotent(self):
        titles = [land_title("A"), land_title("B"), land_title("A"), land_title("C")]

        once = dedupe_titles(titles)

        assert dedupe_titles(once) == once
        assert len({t.title_number for t in once}) == len(once)
