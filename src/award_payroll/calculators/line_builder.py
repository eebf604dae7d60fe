"""Segment line builder with a single rounding rule."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from award_payroll.calculators.types import PayTotals, Segment, SegmentKind

MINUTES_PER_HOUR = Decimal("60")


class SegmentBuilder:
    """Builds itemized pay segments.

    Rounding (non-negotiable):
    - Money rounds half-up to the cent at every segment boundary
    - Hours round half-up to 2 decimals for display only
    - Totals are sums of already-rounded segments, so an itemized
      breakdown always adds up to its own total
    """

    OUTPUT_PRECISION = Decimal("0.01")

    @staticmethod
    def round_to_cents(amount: Decimal) -> Decimal:
        """Round amount to 2 decimal places (cents)."""
        return amount.quantize(SegmentBuilder.OUTPUT_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def round_hours(hours: Decimal) -> Decimal:
        return hours.quantize(SegmentBuilder.OUTPUT_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def minutes_to_hours(minutes: int) -> Decimal:
        return SegmentBuilder.round_hours(Decimal(minutes) / MINUTES_PER_HOUR)

    @staticmethod
    def create_segment(
        kind: SegmentKind,
        label: str,
        multiplier: Decimal,
        minutes: int,
        hourly_rate: Decimal,
    ) -> Segment:
        """Create a segment, pricing ``minutes`` at ``hourly_rate``.

        The amount is computed from exact minutes, not the rounded hours.
        """
        amount = Decimal(minutes) * hourly_rate / MINUTES_PER_HOUR
        return Segment(
            kind=kind,
            label=label,
            multiplier=multiplier,
            minutes=minutes,
            hours=SegmentBuilder.minutes_to_hours(minutes),
            rate=hourly_rate,
            amount=SegmentBuilder.round_to_cents(amount),
        )

    @staticmethod
    def sum_by_kind(segments: Iterable[Segment]) -> dict[SegmentKind, Decimal]:
        """Sum segment amounts by kind."""
        totals: dict[SegmentKind, Decimal] = {kind: Decimal("0") for kind in SegmentKind}
        for segment in segments:
            totals[segment.kind] += segment.amount
        return totals

    @staticmethod
    def totals_from_segments(segments: Iterable[Segment]) -> PayTotals:
        """Collapse segments into base / overtime / penalty pay.

        Holiday segments count as penalty pay.
        """
        by_kind = SegmentBuilder.sum_by_kind(segments)
        base = by_kind[SegmentKind.REGULAR]
        overtime = by_kind[SegmentKind.OVERTIME]
        penalty = by_kind[SegmentKind.PENALTY] + by_kind[SegmentKind.HOLIDAY]
        return PayTotals(
            base_pay=base,
            overtime_pay=overtime,
            penalty_pay=penalty,
            total_gross_pay=base + overtime + penalty,
        )

    @staticmethod
    def validate_partition(segments: Iterable[Segment], working_minutes: int) -> list[str]:
        """Check that segments tile the worked minutes exactly.

        Returns list of error messages (empty if valid).
        """
        errors: list[str] = []
        segments = list(segments)

        for i, segment in enumerate(segments):
            if segment.minutes <= 0:
                errors.append(f"Segment {i} ({segment.label}) has non-positive minutes {segment.minutes}")
            if segment.amount < 0:
                errors.append(f"Segment {i} ({segment.label}) has negative amount {segment.amount}")

        covered = sum(s.minutes for s in segments)
        if covered != working_minutes:
            errors.append(f"Segments cover {covered} minutes, expected {working_minutes}")

        return errors
