"""
Tests for the water damage classification protocol.
"""

from datetime import datetime, timedelta

import pytest

from settlement_engine.core.models import (
    ContaminationLevel,
    WaterCategory,
    WaterClass,
    WaterProtocolResponses,
    WaterSource,
)
from settlement_engine.modules.water_classification import (
    WaterClassifier,
    assess,
    classify,
    protocol_questions,
)


@pytest.fixture
def classifier() -> WaterClassifier:
    return WaterClassifier()


def _responses(now: datetime, source: str, days: int = 0, area: float = 0, **kwargs) -> WaterProtocolResponses:
    return WaterProtocolResponses(
        water_source=source,
        standing_water_start=now - timedelta(days=days),
        standing_water_end=now,
        affected_area=area,
        **kwargs,
    )


class TestSourceInference:
    """Tests for source → category mapping."""

    @pytest.mark.parametrize(
        ("source", "category"),
        [
            ("Supply line burst under vanity", WaterCategory.CATEGORY_1),
            ("rain intrusion", WaterCategory.CATEGORY_1),
            ("Fire sprinkler discharge", WaterCategory.CATEGORY_1),
            ("washing machine overflow", WaterCategory.CATEGORY_2),
            ("Dishwasher leak", WaterCategory.CATEGORY_2),
            ("kitchen sink", WaterCategory.CATEGORY_2),
            ("Sewer backup", WaterCategory.CATEGORY_3),
            ("toilet overflow", WaterCategory.CATEGORY_3),
            ("river flood", WaterCategory.CATEGORY_3),
            ("sewer drain backup", WaterCategory.CATEGORY_3),
            ("rain/flood", WaterCategory.CATEGORY_3),
            ("floor drain", WaterCategory.CATEGORY_2),
            ("Rainwater through roof", WaterCategory.CATEGORY_1),
        ],
    )
    def test_known_sources(self, now: datetime, source: str, category: WaterCategory) -> None:
        """Known sources map to their IICRC category."""
        assert classify(_responses(now, source), now=now).category == category

    def test_unmatched_source_is_gray(self, now: datetime) -> None:
        """Unknown sources default to category 2, never clean."""
        result = classify(_responses(now, "mystery drip from ceiling"), now=now)
        assert result.category == WaterCategory.CATEGORY_2
        assert result.source == WaterSource.GRAY

    def test_empty_source_is_gray(self, now: datetime) -> None:
        """A blank answer defaults to gray water."""
        assert classify(WaterProtocolResponses(), now=now).category == WaterCategory.CATEGORY_2

    def test_most_severe_match_wins(self, classifier: WaterClassifier) -> None:
        """A contaminated source outranks a clean one named in the same answer."""
        assert classifier.infer_source("toilet supply line burst") == WaterSource.BLACK
        assert classifier.infer_source("supply line under kitchen sink") == WaterSource.GRAY

    def test_rain_matches_whole_word_only(self, classifier: WaterClassifier) -> None:
        """Words that merely contain "rain" do not read as rain."""
        assert classifier.infer_source("basement drain") == WaterSource.GRAY
        assert classifier.infer_source("terrain runoff") == WaterSource.GRAY
        assert classifier.infer_source("heavy rains") == WaterSource.CLEAN


class TestStandingDays:
    """Tests for standing-water duration."""

    def test_whole_days(self, now: datetime) -> None:
        """Partial days are floored."""
        start = now - timedelta(days=3, hours=20)
        assert WaterClassifier.standing_days(start, now, now) == 3

    def test_missing_timestamps_are_zero(self, now: datetime) -> None:
        """Missing start and end both default to now."""
        assert WaterClassifier.standing_days(None, None, now) == 0

    def test_negative_duration_clamped(self, now: datetime) -> None:
        """An end before the start counts as zero days."""
        assert WaterClassifier.standing_days(now, now - timedelta(days=5), now) == 0

    def test_naive_and_aware_mix(self, now: datetime) -> None:
        """Naive timestamps are treated as UTC."""
        naive_start = (now - timedelta(days=2)).replace(tzinfo=None)
        assert WaterClassifier.standing_days(naive_start, now, now) == 2


class TestContaminationAndDrying:
    """Tests for contamination level, dryability and water class."""

    def test_black_water(self, now: datetime) -> None:
        """Category 3 is high contamination and never dryable."""
        result = classify(_responses(now, "sewer", area=100), now=now)
        assert result.contamination_level == ContaminationLevel.HIGH
        assert result.drying_possible is False
        assert result.water_class == WaterClass.CLASS_4

    def test_gray_water_fresh(self, now: datetime) -> None:
        """Fresh gray water is low contamination and dryable."""
        result = classify(_responses(now, "dishwasher", days=1, area=100), now=now)
        assert result.contamination_level == ContaminationLevel.LOW
        assert result.drying_possible is True
        assert result.water_class == WaterClass.CLASS_2

    def test_gray_water_visible_contamination(self, now: datetime) -> None:
        """Visible contamination makes gray water high contamination."""
        result = classify(
            _responses(now, "dishwasher", area=10, visible_contamination=True), now=now
        )
        assert result.contamination_level == ContaminationLevel.HIGH
        assert result.water_class == WaterClass.CLASS_1

    def test_gray_water_standing(self, now: datetime) -> None:
        """Gray water standing more than 12 days is medium; drying is lost after 2."""
        result = classify(_responses(now, "sink", days=13, area=50), now=now)
        assert result.contamination_level == ContaminationLevel.MEDIUM
        assert result.drying_possible is False
        assert result.water_class == WaterClass.CLASS_4

    def test_gray_water_long_standing_high(self, now: datetime) -> None:
        result = classify(_responses(now, "sink", days=25, area=50), now=now)
        assert result.contamination_level == ContaminationLevel.HIGH

    def test_clean_large_long_loss_not_dryable(self, now: datetime) -> None:
        """Large losses left standing too long cannot be dried."""
        result = classify(_responses(now, "supply line", days=25, area=1200), now=now)
        assert result.contamination_level == ContaminationLevel.LOW
        assert result.drying_possible is False
        assert result.water_class == WaterClass.CLASS_4

    @pytest.mark.parametrize(
        ("area", "water_class"),
        [
            (0, WaterClass.CLASS_1),
            (24, WaterClass.CLASS_1),
            (25, WaterClass.CLASS_2),
            (300, WaterClass.CLASS_2),
            (301, WaterClass.CLASS_3),
        ],
    )
    def test_class_thresholds(self, now: datetime, area: float, water_class: WaterClass) -> None:
        """Class follows the affected-area thresholds when dryable."""
        assert classify(_responses(now, "supply line", area=area), now=now).water_class == water_class


class TestClassifyContract:
    """Tests for the classify() contract."""

    def test_classified_at_and_notes(self, now: datetime) -> None:
        """Classification records the evaluation time and notes."""
        result = classify(_responses(now, "rain", notes="Attic leak"), now=now)
        assert result.classified_at == now
        assert result.notes == "Attic leak"

    def test_accepts_raw_mapping(self, now: datetime) -> None:
        """Raw answers from the voice layer are accepted."""
        result = classify({"water_source": "toilet", "affected_area": 40}, now=now)
        assert result.category == WaterCategory.CATEGORY_3

    def test_malformed_answers_fall_back_to_defaults(self, now: datetime) -> None:
        """Unreadable fields are ignored rather than raising."""
        result = classify(
            {
                "water_source": "rain",
                "affected_area": "a lot",
                "standing_water_start": "yesterday-ish",
                "water_source_extra": 1,
            },
            now=now,
        )
        assert result.category == WaterCategory.CATEGORY_1
        assert result.water_class == WaterClass.CLASS_1

    def test_none_source(self, now: datetime) -> None:
        """A null source is treated as blank."""
        assert classify({"water_source": None}, now=now).category == WaterCategory.CATEGORY_2


class TestProtocol:
    """Tests for the intake question list and assessment."""

    def test_seven_ordered_questions(self) -> None:
        """Seven questions, numbered in order, each mapped to a response field."""
        questions = protocol_questions()
        assert [q.step for q in questions] == [1, 2, 3, 4, 5, 6, 7]
        assert {q.field for q in questions} == set(WaterProtocolResponses.model_fields)
        assert questions[0].examples

    def test_assess_category_3_triggers_wildcard_rules(self, now: datetime) -> None:
        """Black water triggers the category 3 companion rules."""
        result = assess(_responses(now, "sewer backup"), now=now)
        assert result.classification.category == WaterCategory.CATEGORY_3
        assert result.companions_triggered == ["cat3-001", "cat3-002"]

    def test_assess_clean_water_triggers_nothing(self, now: datetime) -> None:
        result = assess(_responses(now, "supply line"), now=now)
        assert result.companions_triggered == []
