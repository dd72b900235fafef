"""
Water Damage Classification Protocol.
Turns the seven-question intake into an IICRC-style category and class.
"""

import logging
import math
import re
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ..core.models import (
    ContaminationLevel,
    NewScopeItem,
    WaterCategory,
    WaterClass,
    WaterClassification,
    WaterProtocolResponses,
    WaterSource,
    as_utc,
    utcnow,
)
from ..core.rule_engine import CompanionContext, RuleCatalog, evaluate_conditions
from ..core.trade_codes import ANY_TRADE
from .companions import get_default_catalog

logger = logging.getLogger("settlement_engine.modules.water_classification")


class ProtocolQuestion(BaseModel):
    """One step of the voice intake."""

    step: int
    question: str
    examples: list[str] = Field(default_factory=list)
    field: str
    format: str  # text | datetime | number | boolean


class WaterClassificationResult(BaseModel):
    """A classification plus the wildcard companion rules it will trigger."""

    classification: WaterClassification
    companions_triggered: list[str] = Field(default_factory=list)


class WaterClassifier:
    """
    Classifies water losses from protocol responses.

    Classification never fails: unreadable answers fall back to the
    conservative defaults (gray water, zero standing days, zero area).
    """

    # Most severe first: a description naming both a clean and a
    # contaminated source is classified by the contaminated one
    SOURCE_PATTERNS: tuple[tuple[re.Pattern[str], WaterSource], ...] = (
        (re.compile(r"sewer|toilet|flood", re.IGNORECASE), WaterSource.BLACK),
        (
            re.compile(r"washing machine|dish ?washer|sink", re.IGNORECASE),
            WaterSource.GRAY,
        ),
        (
            re.compile(r"supply|\brain(?:water|fall|s)?\b|sprinkler", re.IGNORECASE),
            WaterSource.CLEAN,
        ),
    )
    DEFAULT_SOURCE = WaterSource.GRAY

    CATEGORY_BY_SOURCE = {
        WaterSource.CLEAN: WaterCategory.CATEGORY_1,
        WaterSource.GRAY: WaterCategory.CATEGORY_2,
        WaterSource.BLACK: WaterCategory.CATEGORY_3,
    }

    # Standing-water thresholds (days)
    GRAY_HIGH_CONTAMINATION_DAYS = 24
    GRAY_MEDIUM_CONTAMINATION_DAYS = 12
    GRAY_DRYING_LIMIT_DAYS = 2
    LARGE_LOSS_DRYING_LIMIT_DAYS = 24

    # Area thresholds (sq ft)
    LARGE_LOSS_AREA = 1000
    CLASS_3_AREA = 300
    CLASS_2_AREA = 24

    QUESTIONS: tuple[dict[str, Any], ...] = (
        {
            "step": 1,
            "question": "What was the source of the water damage?",
            "examples": [
                "supply line break",
                "washing machine overflow",
                "sewer backup",
                "rain/flood",
            ],
            "field": "water_source",
            "format": "text",
        },
        {
            "step": 2,
            "question": "When did the water first appear?",
            "field": "standing_water_start",
            "format": "datetime",
        },
        {
            "step": 3,
            "question": "When was the water completely removed?",
            "field": "standing_water_end",
            "format": "datetime",
        },
        {
            "step": 4,
            "question": "What is the approximate affected area in square feet?",
            "field": "affected_area",
            "format": "number",
        },
        {
            "step": 5,
            "question": "Do you see visible contamination (discoloration, odor, growth)?",
            "field": "visible_contamination",
            "format": "boolean",
        },
        {
            "step": 6,
            "question": "What materials are affected? (drywall, carpet, wood, concrete)",
            "field": "affected_materials",
            "format": "text",
        },
        {
            "step": 7,
            "question": "Any additional notes about the water damage?",
            "field": "notes",
            "format": "text",
        },
    )

    def protocol_questions(self) -> list[ProtocolQuestion]:
        """The seven intake questions, in the order they are asked."""
        return [ProtocolQuestion(**question) for question in self.QUESTIONS]

    def infer_source(self, water_source: str | None) -> WaterSource:
        text = (water_source or "").strip()
        for pattern, source in self.SOURCE_PATTERNS:
            if pattern.search(text):
                return source
        return self.DEFAULT_SOURCE

    @staticmethod
    def standing_days(
        start: datetime | None, end: datetime | None, now: datetime
    ) -> int:
        """Whole days of standing water; missing timestamps count as now."""
        start = as_utc(start) if start else now
        end = as_utc(end) if end else now
        days = math.floor((end - start).total_seconds() / 86400)
        return max(0, days)

    def contamination_level(
        self, category: WaterCategory, standing_days: int, visible_contamination: bool
    ) -> ContaminationLevel:
        if category == WaterCategory.CATEGORY_3:
            return ContaminationLevel.HIGH
        if category == WaterCategory.CATEGORY_2:
            if standing_days > self.GRAY_HIGH_CONTAMINATION_DAYS or visible_contamination:
                return ContaminationLevel.HIGH
            if standing_days > self.GRAY_MEDIUM_CONTAMINATION_DAYS:
                return ContaminationLevel.MEDIUM
        return ContaminationLevel.LOW

    def drying_possible(
        self, category: WaterCategory, standing_days: int, affected_area: float
    ) -> bool:
        if category == WaterCategory.CATEGORY_3:
            return False
        if category == WaterCategory.CATEGORY_2 and standing_days > self.GRAY_DRYING_LIMIT_DAYS:
            return False
        if (
            affected_area > self.LARGE_LOSS_AREA
            and standing_days > self.LARGE_LOSS_DRYING_LIMIT_DAYS
        ):
            return False
        return True

    def water_class(self, affected_area: float, drying_possible: bool) -> WaterClass:
        if not drying_possible:
            return WaterClass.CLASS_4
        if affected_area > self.CLASS_3_AREA:
            return WaterClass.CLASS_3
        if affected_area > self.CLASS_2_AREA:
            return WaterClass.CLASS_2
        return WaterClass.CLASS_1

    def classify(
        self,
        responses: WaterProtocolResponses | dict[str, Any],
        now: datetime | None = None,
    ) -> WaterClassification:
        """
        Classify a water loss.

        Args:
            responses: Protocol answers, as a model or a raw mapping
            now: Reference time for missing timestamps and classified_at

        Returns:
            The session's new classification (replaces any previous one)
        """
        now = as_utc(now) if now else utcnow()
        answers = _coerce_responses(responses)

        source = self.infer_source(answers.water_source)
        category = self.CATEGORY_BY_SOURCE[source]
        days = self.standing_days(answers.standing_water_start, answers.standing_water_end, now)
        area = max(0.0, answers.affected_area or 0.0)

        contamination = self.contamination_level(category, days, answers.visible_contamination)
        dryable = self.drying_possible(category, days, area)

        classification = WaterClassification(
            category=category,
            water_class=self.water_class(area, dryable),
            source=source,
            contamination_level=contamination,
            drying_possible=dryable,
            classified_at=now,
            notes=answers.notes,
        )
        logger.debug(
            "Classified water loss: source=%s category=%d class=%d standing_days=%d",
            source.value,
            classification.category,
            classification.water_class,
            days,
        )
        return classification

    def assess(
        self,
        responses: WaterProtocolResponses | dict[str, Any],
        catalog: RuleCatalog | None = None,
        now: datetime | None = None,
    ) -> WaterClassificationResult:
        """Classify and report which wildcard companion rules now apply."""
        classification = self.classify(responses, now=now)
        catalog = catalog if catalog is not None else get_default_catalog()
        ctx = CompanionContext(
            primary_item=NewScopeItem(trade_code="GEN"),
            existing_items=[],
            water_classification=classification,
            evaluated_at=classification.classified_at,
        )

        triggered: list[str] = []
        for rule in catalog.rules_for_trigger(ANY_TRADE):
            try:
                if evaluate_conditions(rule, ctx):
                    triggered.append(rule.rule_id)
            except Exception:
                logger.warning("Condition of rule %s failed during assessment", rule.rule_id, exc_info=True)

        logger.info(
            "Water damage protocol processed: category=%d class=%d source=%s",
            classification.category,
            classification.water_class,
            classification.source.value,
        )
        return WaterClassificationResult(
            classification=classification, companions_triggered=triggered
        )


def _coerce_responses(
    responses: WaterProtocolResponses | dict[str, Any] | None,
) -> WaterProtocolResponses:
    """Validate raw answers, dropping any field that cannot be read."""
    if isinstance(responses, WaterProtocolResponses):
        return responses
    data = {k: v for k, v in dict(responses or {}).items() if v is not None}
    try:
        return WaterProtocolResponses.model_validate(data)
    except ValidationError as exc:
        bad_fields = {error["loc"][0] for error in exc.errors() if error["loc"]}
        logger.warning("Ignoring unreadable water protocol answers: %s", sorted(map(str, bad_fields)))
        cleaned = {k: v for k, v in data.items() if k not in bad_fields}
        try:
            return WaterProtocolResponses.model_validate(cleaned)
        except ValidationError:
            return WaterProtocolResponses()


# Module-level classifier
_default_classifier: WaterClassifier | None = None


def get_classifier() -> WaterClassifier:
    """Get or create the default water classifier."""
    global _default_classifier
    if _default_classifier is None:
        _default_classifier = WaterClassifier()
    return _default_classifier


def classify(
    responses: WaterProtocolResponses | dict[str, Any],
    now: datetime | None = None,
) -> WaterClassification:
    return get_classifier().classify(responses, now=now)


def protocol_questions() -> list[ProtocolQuestion]:
    return get_classifier().protocol_questions()


def assess(
    responses: WaterProtocolResponses | dict[str, Any],
    catalog: RuleCatalog | None = None,
    now: datetime | None = None,
) -> WaterClassificationResult:
    return get_classifier().assess(responses, catalog=catalog, now=now)
