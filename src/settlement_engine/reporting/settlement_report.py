"""
Settlement Reporting Module.
Renders settlement results as text, dictionaries and JSON.
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Any

from ..core.models import (
    CoverageSummary,
    DepreciationType,
    IssueSeverity,
    LineSettlement,
    SettlementResult,
)


def _money(value: Decimal | None) -> str:
    if value is None:
        return "n/a"
    return f"${value:,.2f}"


class SettlementFormatter:
    """
    Formats settlement results for various output formats.
    """

    SEVERITY_ICONS = {
        IssueSeverity.WARNING: "⚠️",
        IssueSeverity.ERROR: "❌",
    }

    WIDTH = 70

    def __init__(self, result: SettlementResult) -> None:
        self.result = result

    def to_text(self, include_lines: bool = True) -> str:
        """
        Format the settlement as a plain text report.

        Args:
            include_lines: Whether to list individual line items

        Returns:
            Formatted text report
        """
        r = self.result
        lines: list[str] = []

        lines.append("=" * self.WIDTH)
        lines.append("CLAIM SETTLEMENT SUMMARY")
        lines.append("=" * self.WIDTH)
        lines.append("")
        lines.append(f"Calculated: {r.calculated_at.strftime('%Y-%m-%d %H:%M:%S UTC')}")
        lines.append(f"Trades Involved: {', '.join(r.trades_involved) or 'none'}")
        lines.append(
            f"O&P: {'applied' if r.op_eligible else 'not applied'} "
            f"(threshold {r.op_threshold} trades)"
        )
        lines.append("")

        for coverage in r.coverages:
            lines.extend(self._coverage_block(coverage))

        if include_lines and r.lines:
            lines.append("-" * self.WIDTH)
            lines.append("LINE ITEMS")
            lines.append("-" * self.WIDTH)
            for line in r.lines:
                lines.append(self._line_row(line))
            lines.append("")

        lines.append("-" * self.WIDTH)
        lines.append("TOTALS")
        lines.append("-" * self.WIDTH)
        lines.append(f"Line Item Total: {_money(r.line_item_total)}")
        lines.append(f"Overhead: {_money(r.overhead_amount)}")
        lines.append(f"Profit: {_money(r.profit_amount)}")
        for label, amount in r.tax_breakdown.items():
            lines.append(f"{label}: {_money(amount)}")
        lines.append(f"Total RCV: {_money(r.total_rcv)}")
        lines.append(f"Recoverable Depreciation: {_money(r.recoverable_depreciation)}")
        lines.append(f"Non-Recoverable Depreciation: {_money(r.non_recoverable_depreciation)}")
        lines.append(f"Total ACV: {_money(r.total_acv)}")
        lines.append(f"Deductible: {_money(r.deductible)}")
        lines.append(f"Net Claim: {_money(r.net_claim)}")
        lines.append("")

        if r.issues:
            lines.append("-" * self.WIDTH)
            lines.append("ISSUES")
            lines.append("-" * self.WIDTH)
            for issue in r.issues:
                icon = self.SEVERITY_ICONS.get(issue.severity, "•")
                lines.append(f"{icon} [{issue.severity.value.upper()}] {issue.message}")
            lines.append("")

        lines.append("=" * self.WIDTH)
        lines.append("END OF REPORT")
        lines.append("=" * self.WIDTH)

        return "\n".join(lines)

    def _coverage_block(self, coverage: CoverageSummary) -> list[str]:
        block = [
            "-" * self.WIDTH,
            coverage.coverage_bucket.upper(),
            "-" * self.WIDTH,
            f"Line Items: {_money(coverage.line_item_total)}",
            f"O&P: {_money(coverage.overhead_amount + coverage.profit_amount)}",
            f"Tax: {_money(coverage.tax_amount)}",
            f"RCV: {_money(coverage.rcv)}",
            f"ACV: {_money(coverage.acv)}",
        ]
        if coverage.policy_limit is not None:
            flag = "  ⚠️ near limit" if coverage.near_limit else ""
            block.append(
                f"Policy Limit: {_money(coverage.policy_limit)} "
                f"({coverage.utilization:.0%} utilized){flag}"
            )
        block.append("")
        return block

    @staticmethod
    def _line_row(line: LineSettlement) -> str:
        marker = "*" if line.depreciation_type == DepreciationType.NON_RECOVERABLE else " "
        label = line.code or line.trade_code
        return (
            f"  {label:<16} {line.description[:24]:<24} "
            f"RCV {_money(line.rcv):>12}  Dep{marker}{_money(line.depreciation_amount):>11}"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the settlement to dictionary format.

        Returns:
            Dictionary representation with money as floats
        """

        def serialize_value(v: Any) -> Any:
            if isinstance(v, Decimal):
                return float(v)
            elif isinstance(v, datetime):
                return v.isoformat()
            elif hasattr(v, "value"):  # Enum
                return v.value
            return v

        def serialize_model(model: Any) -> dict[str, Any]:
            return {k: serialize_value(v) for k, v in model.model_dump().items()}

        r = self.result
        return {
            "calculated_at": r.calculated_at.isoformat(),
            "carrier_code": r.carrier_code,
            "labor_efficiency": r.labor_efficiency,
            "trades_involved": list(r.trades_involved),
            "op_threshold": r.op_threshold,
            "op_eligible": r.op_eligible,
            "totals": {
                "line_item_total": float(r.line_item_total),
                "overhead_amount": float(r.overhead_amount),
                "profit_amount": float(r.profit_amount),
                "tax_amount": float(r.tax_amount),
                "total_rcv": float(r.total_rcv),
                "total_depreciation": float(r.total_depreciation),
                "recoverable_depreciation": float(r.recoverable_depreciation),
                "non_recoverable_depreciation": float(r.non_recoverable_depreciation),
                "total_acv": float(r.total_acv),
                "deductible": float(r.deductible),
                "net_claim": float(r.net_claim),
            },
            "tax_breakdown": {label: float(amount) for label, amount in r.tax_breakdown.items()},
            "coverages": [serialize_model(c) for c in r.coverages],
            "lines": [serialize_model(line) for line in r.lines],
            "issues": [serialize_model(issue) for issue in r.issues],
        }

    def to_json(self, indent: int = 2) -> str:
        """
        Convert the settlement to JSON format.

        Args:
            indent: JSON indentation level

        Returns:
            JSON string representation
        """
        return json.dumps(self.to_dict(), indent=indent)
