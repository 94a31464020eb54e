"""Tests for per-field candidate merging."""

import pytest

from labelcheck.models import FIELD_KEYS, AccuracyDecision, FieldAccuracy
from labelcheck.services.extraction import ExtractionCandidate
from labelcheck.services.merger import (
    Contender,
    merge_candidates,
    select_contender,
    select_most_complete,
)

from conftest import build_expected, build_extracted


def decision(**overrides) -> AccuracyDecision:
    return AccuracyDecision.from_fields(FieldAccuracy.uniform(1).model_copy(update=overrides))


def candidate(index, evaluation=None, **label_overrides) -> ExtractionCandidate:
    return ExtractionCandidate(extracted=build_extracted(**label_overrides), evaluation=evaluation, index=index)


class TestSelectContender:
    """Test per-field ordering."""

    def test_highest_similarity_wins(self):
        best = select_contender([
            Contender(index=0, score=0, similarity=0.5, has_value=True),
            Contender(index=1, score=0, similarity=0.9, has_value=True),
        ], has_accurate=False)
        assert best.index == 1

    def test_accurate_pool_restricts_choice(self):
        best = select_contender([
            Contender(index=0, score=0, similarity=1.0, has_value=True),
            Contender(index=1, score=1, similarity=0.4, has_value=True),
        ], has_accurate=True)
        assert best.index == 1

    def test_tie_prefers_non_null(self):
        best = select_contender([
            Contender(index=0, score=0, similarity=0.0, has_value=False),
            Contender(index=1, score=0, similarity=0.0, has_value=True),
        ], has_accurate=False)
        assert best.index == 1

    def test_tie_prefers_lower_index(self):
        best = select_contender([
            Contender(index=1, score=1, similarity=0.8, has_value=True),
            Contender(index=0, score=1, similarity=0.8, has_value=True),
        ], has_accurate=True)
        assert best.index == 0


class TestMergeCandidates:
    """Test building the merged label and decision."""

    def test_fields_taken_from_different_candidates(self):
        expected = build_expected()
        first = candidate(0, decision(net_contents=0), netContents={"text": "75 ML"})
        second = candidate(1, decision(brand_name=0), brandName={"text": "OLD TIM"})

        label, merged = merge_candidates([first, second], expected)

        assert label.text_of("brand_name") == "OLD TOM DISTILLERY"
        assert label.text_of("net_contents") == "750 ML"
        assert merged.passed is True

    def test_field_fails_only_when_no_candidate_passed(self):
        expected = build_expected()
        first = candidate(0, decision(bottler_producer=0))
        second = candidate(1, decision(bottler_producer=0, brand_name=0))

        _, merged = merge_candidates([first, second], expected)

        assert merged.fields.bottler_producer == 0
        assert merged.fields.brand_name == 1
        assert merged.passed is False

    def test_identical_similarity_picks_lower_index(self):
        expected = build_expected()
        first = candidate(0, decision(), brandName={"text": "Old Tom Distillery LLC"})
        second = candidate(1, decision(), brandName={"text": "Old Tom Distillery Inc"})

        label, _ = merge_candidates([second, first], expected)

        assert label.text_of("brand_name") == "Old Tom Distillery LLC"

    def test_merged_values_come_from_candidates(self):
        expected = build_expected()
        candidates = [
            candidate(0, decision(class_type=0), classType={"text": "Bourbon"}, alcoholContent=None),
            candidate(1, None, brandName=None, netContents={"text": "700 ML"}),
        ]

        label, _ = merge_candidates(candidates, expected)

        for key in FIELD_KEYS:
            value = getattr(label, key)
            assert any(getattr(c.extracted, key) == value for c in candidates)

    def test_merged_label_does_not_alias_candidates(self):
        expected = build_expected()
        first = candidate(0, decision())

        label, _ = merge_candidates([first], expected)

        assert label.brand_name == first.extracted.brand_name
        assert label.brand_name is not first.extracted.brand_name

    def test_missing_evaluation_defaults_to_fail(self):
        expected = build_expected()
        label, merged = merge_candidates([candidate(0, None)], expected)

        assert merged.fields.brand_name == 0
        assert merged.passed is False
        assert label.text_of("brand_name") == "OLD TOM DISTILLERY"

    def test_beer_alcohol_always_passes(self):
        expected = build_expected(productType="beer", classType={"text": "Pale Ale"})
        candidates = [
            candidate(0, None, alcoholContent={"text": "99%"}),
            candidate(1, None, alcoholContent=None),
        ]

        _, merged = merge_candidates(candidates, expected)

        assert merged.fields.alcohol_content == 1

    def test_domestic_country_always_passes(self):
        expected = build_expected(isImported=False)
        _, merged = merge_candidates([candidate(0, None, countryOfOrigin={"text": "Narnia"})], expected)

        assert merged.fields.country_of_origin == 1

    def test_additives_merged_by_agreement(self):
        expected = build_expected(additivesDetected={"sulfites_ge_10ppm": True})
        candidates = [
            candidate(0, decision(additives_disclosed=0), additivesDisclosed=None),
            candidate(1, decision(additives_disclosed=0), additivesDisclosed={"sulfitesGe10ppm": True}),
        ]

        label, merged = merge_candidates(candidates, expected)

        assert label.additives_disclosed.sulfites_ge_10ppm is True
        assert merged.fields.additives_disclosed == 0

    def test_empty_list_rejected(self):
        with pytest.raises(ValueError):
            merge_candidates([], build_expected())


class TestSelectMostComplete:
    """Test selection without expected data."""

    def test_fewest_missing_fields(self):
        sparse = candidate(0, brandName=None, classType=None)
        full = candidate(1)
        assert select_most_complete([sparse, full]).index == 1

    def test_tie_goes_to_lowest_index(self):
        assert select_most_complete([candidate(1), candidate(0)]).index == 0
