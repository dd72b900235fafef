"""
Settlement Calculation Module.
Turns priced line items plus per-claim policy and tax rules into a settlement:
RCV, depreciation, ACV, overhead & profit, tax, deductible and net claim.
"""

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from ..config import Settings, settings as default_settings
from ..core.models import (
    CostType,
    CoverageSummary,
    DepreciationType,
    IssueSeverity,
    LineItem,
    LineSettlement,
    PolicyRule,
    SettlementResult,
    TaxRule,
    ValidationIssue,
    coverage_bucket_name,
    normalize_percent,
    to_money,
    utcnow,
)
from ..core.trade_codes import normalize_trade_code
from ..exceptions import ConfigurationError
from .depreciation import DepreciationBasis, compute_depreciation

logger = logging.getLogger("settlement_engine.modules.settlement")

ZERO = Decimal("0")


@dataclass(frozen=True)
class CarrierProfile:
    """
    Carrier-specific settlement behaviour.

    Unset percentages and thresholds fall through to the policy rule and
    then to the engine settings. Rates accept whole percents or fractions.
    """

    carrier_code: str
    description: str = ""
    op_threshold: int | None = None
    overhead_pct: float | None = None
    profit_pct: float | None = None
    op_excluded_trades: tuple[str, ...] = field(default_factory=tuple)
    apply_roof_schedule: bool = False
    tax_on_labor: bool = True
    # Xactimate never taxes O&P; carriers may override
    tax_on_op: bool = False
    depreciation_basis: DepreciationBasis | str = DepreciationBasis.RCV_FULL
    # Used to seed a claim's tax rule when the policy data has no rate
    default_tax_rate: float | None = None
    labor_efficiency: float = 1.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "carrier_code", self.carrier_code.strip().upper())
        for name in ("overhead_pct", "profit_pct", "default_tax_rate", "labor_efficiency"):
            object.__setattr__(self, name, normalize_percent(getattr(self, name)))
        object.__setattr__(
            self,
            "op_excluded_trades",
            tuple(normalize_trade_code(t) for t in self.op_excluded_trades),
        )

        errors: list[str] = []
        try:
            basis = DepreciationBasis(self.depreciation_basis.strip().lower())
            object.__setattr__(self, "depreciation_basis", basis)
        except ValueError:
            allowed = ", ".join(b.value for b in DepreciationBasis)
            errors.append(f"depreciation_basis must be one of: {allowed}")
        if self.op_threshold is not None and self.op_threshold < 1:
            errors.append("op_threshold must be >= 1")
        for name in ("overhead_pct", "profit_pct", "default_tax_rate"):
            value = getattr(self, name)
            if value is not None and not 0 <= value <= 1:
                errors.append(f"{name} must be between 0 and 100 percent")
        if self.labor_efficiency is None or not 0 < self.labor_efficiency <= 2:
            errors.append("labor_efficiency must be above 0 and at most 200 percent")
        if errors:
            raise ConfigurationError(
                f"Invalid carrier profile {self.carrier_code}: " + "; ".join(errors)
            )


DEFAULT_CARRIER_PROFILE = CarrierProfile(
    carrier_code="DEFAULT",
    description="Xactimate-standard defaults (Replacement Cost Value basis)",
)

CARRIER_PROFILES: dict[str, CarrierProfile] = {
    profile.carrier_code: profile
    for profile in (
        DEFAULT_CARRIER_PROFILE,
        CarrierProfile(
            carrier_code="CARRIER_STATE_FARM",
            description="State Farm: 12/8 O&P, non-taxable labor, mitigation excluded, roof depreciation schedule",
            op_threshold=3,
            overhead_pct=0.12,
            profit_pct=0.08,
            op_excluded_trades=("MIT",),
            apply_roof_schedule=True,
            tax_on_labor=False,
            depreciation_basis=DepreciationBasis.RCV_BEFORE_OP,
        ),
        CarrierProfile(
            carrier_code="CARRIER_ALLSTATE",
            description="Allstate: 2-trade O&P threshold, non-taxable O&P, mitigation and demolition excluded",
            op_threshold=2,
            overhead_pct=0.10,
            profit_pct=0.10,
            op_excluded_trades=("MIT", "DEM"),
            depreciation_basis=DepreciationBasis.RCV_BEFORE_OP,
        ),
        CarrierProfile(
            carrier_code="CARRIER_HOMEOWNERS_STANDARD",
            description="Standard homeowners (high O&P rates)",
            op_threshold=3,
            overhead_pct=0.15,
            profit_pct=0.15,
        ),
    )
}


def resolve_carrier_profile(carrier_code: str | None) -> CarrierProfile:
    """Profile for a carrier code; unknown or missing codes get the default."""
    if not carrier_code:
        return DEFAULT_CARRIER_PROFILE
    profile = CARRIER_PROFILES.get(carrier_code.strip().upper())
    if profile is None:
        logger.debug("Unknown carrier %s; using default settlement profile", carrier_code)
        return DEFAULT_CARRIER_PROFILE
    return profile


# Structure keywords that route an item away from Coverage A (dwelling)
_STRUCTURE_BUCKETS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("contents", "personal property"), "Coverage C"),
    (("loss of use", "additional living"), "Coverage D"),
    (
        ("detached", "other structure", "fence", "shed", "outbuilding", "barn", "pool"),
        "Coverage B",
    ),
)


def resolve_coverage_bucket(item: LineItem) -> str:
    """Explicit override, then the source room's structure, then Coverage A."""
    if item.coverage_bucket:
        return coverage_bucket_name(item.coverage_bucket)
    structure = (item.structure or "").strip().lower()
    if structure:
        for keywords, bucket in _STRUCTURE_BUCKETS:
            if any(keyword in structure for keyword in keywords):
                return bucket
    return "Coverage A"


@dataclass
class _BucketTotals:
    line_item_total: Decimal = ZERO
    eligible_rcv: Decimal = ZERO
    tax_amount: Decimal = ZERO
    recoverable: Decimal = ZERO
    non_recoverable: Decimal = ZERO


class SettlementCalculator:
    """
    Computes claim settlements.

    Percentages are fractions throughout; whole-number percents are
    normalized by the models before they get here.
    """

    def __init__(
        self,
        config: Settings | None = None,
        carrier: CarrierProfile | str | None = None,
    ) -> None:
        self.config = config or default_settings
        if isinstance(carrier, CarrierProfile):
            self.carrier = carrier
        else:
            self.carrier = resolve_carrier_profile(carrier)

    @property
    def op_threshold(self) -> int:
        if self.carrier.op_threshold is not None:
            return self.carrier.op_threshold
        return self.config.op_trade_threshold

    def calculate(
        self,
        line_items: Sequence[LineItem],
        policy_rules: Iterable[PolicyRule],
        limits: Mapping[str, Decimal | float | int] | None = None,
        tax_rules: Sequence[TaxRule] | None = None,
        *,
        property_age: float | None = None,
    ) -> SettlementResult:
        """
        Calculate a settlement.

        Args:
            line_items: Priced line items of the claim
            policy_rules: One policy rule per coverage bucket
            limits: Optional per-bucket limit overrides ("A", "Coverage A", ...)
            tax_rules: Claim tax rules; None or empty uses the policy tax rate
            property_age: Age of the structure, for the roof schedule

        Returns:
            SettlementResult with per-line, per-bucket and claim totals

        Raises:
            ConfigurationError: An item's bucket has no policy rule, or a
                bucket has more than one
        """
        rules_by_bucket = self._index_rules(policy_rules)
        limit_overrides = {
            coverage_bucket_name(str(k)): Decimal(str(v)) for k, v in (limits or {}).items()
        }
        tax_rules = list(tax_rules or [])

        lines: list[LineSettlement] = []
        buckets: dict[str, _BucketTotals] = {}
        tax_breakdown: dict[str, Decimal] = {}
        trades_involved: list[str] = []
        eligible_trades: set[str] = set()

        for item in line_items:
            bucket = resolve_coverage_bucket(item)
            rule = rules_by_bucket.get(bucket)
            if rule is None:
                raise ConfigurationError(
                    f"No policy rule configured for {bucket} "
                    f"(line item {item.id if item.id is not None else item.code})"
                )

            trade = normalize_trade_code(item.trade_code)
            if trade not in trades_involved:
                trades_involved.append(trade)
            op_eligible = self._is_op_eligible(item, trade, rule)
            if op_eligible:
                eligible_trades.add(trade)

            rcv = to_money(item.total_price or ZERO)
            outcome = compute_depreciation(
                item, rule, property_age, self.config, basis=self.carrier.depreciation_basis
            )
            line_tax = self._line_tax(item, rule, tax_rules, tax_breakdown)

            lines.append(
                LineSettlement(
                    line_item_id=item.id,
                    code=item.code,
                    trade_code=trade,
                    category=item.category,
                    description=item.description,
                    coverage_bucket=bucket,
                    rcv=rcv,
                    depreciation_amount=outcome.amount,
                    depreciation_percentage=outcome.percentage,
                    depreciation_type=outcome.depreciation_type,
                    depreciation_basis=outcome.basis,
                    acv=rcv - outcome.amount,
                    op_eligible=op_eligible,
                    tax_amount=line_tax,
                )
            )

            totals = buckets.setdefault(bucket, _BucketTotals())
            totals.line_item_total += rcv
            totals.tax_amount += line_tax
            if op_eligible:
                totals.eligible_rcv += rcv
            if outcome.depreciation_type == DepreciationType.NON_RECOVERABLE:
                totals.non_recoverable += outcome.amount
            else:
                totals.recoverable += outcome.amount

        op_applies = len(eligible_trades) >= self.op_threshold
        issues: list[ValidationIssue] = []
        coverages = [
            self._summarize_bucket(
                bucket,
                buckets[bucket],
                rules_by_bucket[bucket],
                limit_overrides.get(bucket),
                op_applies,
                tax_rules,
                tax_breakdown,
                issues,
            )
            for bucket in sorted(buckets)
        ]

        result = self._totals(
            lines, coverages, rules_by_bucket, tax_breakdown, trades_involved, op_applies, issues
        )
        logger.info(
            "Settlement: %d line(s), %d bucket(s), RCV %s, ACV %s, net %s, O&P %s",
            len(lines),
            len(coverages),
            result.total_rcv,
            result.total_acv,
            result.net_claim,
            "applied" if op_applies else "not applied",
        )
        return result

    @staticmethod
    def _index_rules(policy_rules: Iterable[PolicyRule]) -> dict[str, PolicyRule]:
        indexed: dict[str, PolicyRule] = {}
        for rule in policy_rules:
            if rule.bucket in indexed:
                raise ConfigurationError(f"Duplicate policy rule for {rule.bucket}")
            indexed[rule.bucket] = rule
        return indexed

    def _is_op_eligible(self, item: LineItem, trade: str, rule: PolicyRule) -> bool:
        if not item.op_eligible_default:
            return False
        excluded = {normalize_trade_code(t) for t in rule.op_excluded_trades}
        excluded.update(self.carrier.op_excluded_trades)
        return trade not in excluded

    def _op_rates(self, rule: PolicyRule) -> tuple[float, float]:
        overhead = rule.overhead_pct
        if overhead is None:
            overhead = self.carrier.overhead_pct
        if overhead is None:
            overhead = self.config.default_overhead_pct

        profit = rule.profit_pct
        if profit is None:
            profit = self.carrier.profit_pct
        if profit is None:
            profit = self.config.default_profit_pct
        return overhead, profit

    def _fallback_tax_rate(self, rule: PolicyRule) -> float | None:
        if rule.tax_rate is not None:
            return rule.tax_rate
        return self.carrier.default_tax_rate

    def _line_tax(
        self,
        item: LineItem,
        rule: PolicyRule,
        tax_rules: list[TaxRule],
        breakdown: dict[str, Decimal],
    ) -> Decimal:
        """Tax owed on one line; rules stack and are accumulated per label."""
        material, labor = item.cost_split()
        taxable = item.total_price or ZERO
        if not self.carrier.tax_on_labor:
            taxable = max(ZERO, taxable - labor)
            labor = ZERO
        total = ZERO

        if not tax_rules:
            rate = self._fallback_tax_rate(rule)
            if not rate:
                return ZERO
            amount = to_money(material * Decimal(str(rate)))
            breakdown["Sales Tax"] = breakdown.get("Sales Tax", ZERO) + amount
            return amount

        for tax_rule in tax_rules:
            if not tax_rule.applies_to(item.category, item.trade_code):
                continue
            if tax_rule.applies_to_cost_type == CostType.MATERIAL:
                base = material
            elif tax_rule.applies_to_cost_type == CostType.LABOR:
                base = labor
            else:
                base = taxable
            amount = to_money(base * Decimal(str(tax_rule.tax_rate)))
            breakdown[tax_rule.tax_label] = breakdown.get(tax_rule.tax_label, ZERO) + amount
            total += amount
        return total

    def _op_tax(
        self,
        op_amount: Decimal,
        rule: PolicyRule,
        tax_rules: list[TaxRule],
        breakdown: dict[str, Decimal],
    ) -> Decimal:
        """Tax on a bucket's O&P, for carriers that tax it.

        O&P carries no category or cost split, so only rules that apply to
        every category and every cost type reach it.
        """
        if not self.carrier.tax_on_op or op_amount <= 0:
            return ZERO
        if not tax_rules:
            rate = self._fallback_tax_rate(rule)
            if not rate:
                return ZERO
            amount = to_money(op_amount * Decimal(str(rate)))
            breakdown["Sales Tax"] = breakdown.get("Sales Tax", ZERO) + amount
            return amount

        total = ZERO
        for tax_rule in tax_rules:
            if tax_rule.applies_to_categories or tax_rule.applies_to_cost_type != CostType.ALL:
                continue
            amount = to_money(op_amount * Decimal(str(tax_rule.tax_rate)))
            breakdown[tax_rule.tax_label] = breakdown.get(tax_rule.tax_label, ZERO) + amount
            total += amount
        return total

    def _summarize_bucket(
        self,
        bucket: str,
        totals: _BucketTotals,
        rule: PolicyRule,
        limit_override: Decimal | None,
        op_applies: bool,
        tax_rules: list[TaxRule],
        tax_breakdown: dict[str, Decimal],
        issues: list[ValidationIssue],
    ) -> CoverageSummary:
        overhead = profit = ZERO
        if op_applies and totals.eligible_rcv > 0:
            overhead_pct, profit_pct = self._op_rates(rule)
            overhead = to_money(totals.eligible_rcv * Decimal(str(overhead_pct)))
            profit = to_money(totals.eligible_rcv * Decimal(str(profit_pct)))

        tax = totals.tax_amount + self._op_tax(overhead + profit, rule, tax_rules, tax_breakdown)
        rcv = totals.line_item_total + overhead + profit + tax
        summary = CoverageSummary(
            coverage_bucket=bucket,
            line_item_total=totals.line_item_total,
            overhead_amount=overhead,
            profit_amount=profit,
            tax_amount=tax,
            rcv=rcv,
            recoverable_depreciation=totals.recoverable,
            non_recoverable_depreciation=totals.non_recoverable,
            acv=rcv - totals.recoverable - totals.non_recoverable,
        )

        limit = limit_override if limit_override is not None else rule.policy_limit
        if limit is not None and limit > 0:
            utilization = float(rcv / limit)
            summary.policy_limit = limit
            summary.utilization = utilization
            if utilization >= self.config.utilization_warning_threshold:
                summary.near_limit = True
                state = "exceeds" if rcv > limit else "is near"
                issues.append(
                    ValidationIssue(
                        severity=IssueSeverity.WARNING,
                        message=(
                            f"{bucket} RCV ${rcv:,.2f} {state} the policy limit "
                            f"${limit:,.2f} ({utilization:.0%} utilized)"
                        ),
                        code="policy_limit_utilization",
                    )
                )
                logger.warning("%s at %.0f%% of policy limit", bucket, utilization * 100)
        return summary

    def _totals(
        self,
        lines: list[LineSettlement],
        coverages: list[CoverageSummary],
        rules_by_bucket: dict[str, PolicyRule],
        tax_breakdown: dict[str, Decimal],
        trades_involved: list[str],
        op_applies: bool,
        issues: list[ValidationIssue],
    ) -> SettlementResult:
        recoverable = sum((c.recoverable_depreciation for c in coverages), ZERO)
        non_recoverable = sum((c.non_recoverable_depreciation for c in coverages), ZERO)
        total_rcv = sum((c.rcv for c in coverages), ZERO)
        total_depreciation = recoverable + non_recoverable
        total_acv = total_rcv - total_depreciation

        used = [rules_by_bucket[c.coverage_bucket] for c in coverages]
        deductible_rules = used or list(rules_by_bucket.values())
        deductible = max((r.deductible for r in deductible_rules), default=ZERO)

        return SettlementResult(
            calculated_at=utcnow(),
            lines=lines,
            coverages=coverages,
            trades_involved=trades_involved,
            carrier_code=self.carrier.carrier_code,
            labor_efficiency=self.carrier.labor_efficiency,
            op_threshold=self.op_threshold,
            op_eligible=op_applies,
            overhead_amount=sum((c.overhead_amount for c in coverages), ZERO),
            profit_amount=sum((c.profit_amount for c in coverages), ZERO),
            tax_amount=sum((c.tax_amount for c in coverages), ZERO),
            tax_breakdown=tax_breakdown,
            line_item_total=sum((c.line_item_total for c in coverages), ZERO),
            total_rcv=total_rcv,
            total_depreciation=total_depreciation,
            recoverable_depreciation=recoverable,
            non_recoverable_depreciation=non_recoverable,
            total_acv=total_acv,
            deductible=to_money(deductible),
            net_claim=max(ZERO, total_acv - to_money(deductible)),
            issues=issues,
        )


def calculate_settlement(
    line_items: Sequence[LineItem],
    policy_rules: Iterable[PolicyRule],
    limits: Mapping[str, Decimal | float | int] | None = None,
    tax_rules: Sequence[TaxRule] | None = None,
    *,
    property_age: float | None = None,
    carrier: CarrierProfile | str | None = None,
    config: Settings | None = None,
) -> SettlementResult:
    """
    Convenience function to calculate a settlement.

    Args:
        line_items: Priced line items
        policy_rules: Per-bucket policy rules
        limits: Optional per-bucket limit overrides
        tax_rules: Optional tax rules
        property_age: Age of the structure in years
        carrier: Carrier profile or carrier code
        config: Settings override

    Returns:
        SettlementResult
    """
    calculator = SettlementCalculator(config=config, carrier=carrier)
    return calculator.calculate(
        line_items, policy_rules, limits, tax_rules, property_age=property_age
    )
