"""Award payroll command line interface.

Provides tools for:
- Previewing withholding on a gross amount with the bundled tables
- Itemizing a single shift
- Syncing and validating stored pay periods

Usage:
    python -m award_payroll preview-tax --gross 1200 --frequency weekly
    python -m award_payroll shift --start 2024-07-01T09:00 --end 2024-07-01T18:00 --base-rate 25
    python -m award_payroll sync PERIOD_ID
    python -m award_payroll validate PERIOD_ID
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable
from uuid import UUID, uuid4

from award_payroll.calculators.engine import PayrollEngine
from award_payroll.calculators.errors import PayrollError
from award_payroll.calculators.tax_calculator import TaxCalculator
from award_payroll.calculators.tax_tables import default_snapshot, normalize_tax_year
from award_payroll.calculators.types import (
    Award,
    MedicareExemption,
    PayFrequency,
    Shift,
    TaxWithholdingProfile,
)
from award_payroll.config import get_settings
from award_payroll.database import dispose_engine, get_session
from award_payroll.repositories import SqlAlchemyPayrollStore, SqlAlchemyRateTableSource
from award_payroll.services.pay_period_synchronizer import PayPeriodSynchronizer
from award_payroll.services.tax_coefficient_store import TaxCoefficientStore


def parse_datetime(s: str) -> datetime:
    """Parse ISO datetime string; naive values are taken as UTC."""
    value = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


def parse_decimal(s: str) -> Decimal:
    try:
        return Decimal(s)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"Not a decimal amount: {s}") from exc


class PayrollCli:
    """Award payroll command line interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m award_payroll",
            description="Award payroll tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # preview-tax command
        preview = subparsers.add_parser(
            "preview-tax",
            help="Preview withholding on a gross amount using the bundled tables",
        )
        preview.add_argument(
            "--gross",
            type=parse_decimal,
            required=True,
            help="Taxable gross pay for one period",
        )
        preview.add_argument(
            "--frequency",
            type=str,
            choices=["weekly", "fortnightly", "monthly"],
            default="weekly",
            help="Pay frequency (default: weekly)",
        )
        preview.add_argument(
            "--tax-year",
            type=str,
            help="Fiscal year such as 2024-25 (default: $DEFAULT_TAX_YEAR)",
        )
        preview.add_argument(
            "--claimed-threshold",
            action="store_true",
            help="Employee claimed the tax-free threshold",
        )
        preview.add_argument(
            "--foreign-resident",
            action="store_true",
            help="Employee is a foreign resident",
        )
        preview.add_argument(
            "--no-tfn",
            action="store_true",
            help="Employee has not provided a tax file number",
        )
        preview.add_argument(
            "--medicare-exemption",
            type=str,
            choices=["none", "half", "full"],
            default="none",
            help="Medicare levy exemption",
        )
        preview.add_argument(
            "--study-loan",
            action="store_true",
            help="Employee has a study loan",
        )
        preview.add_argument(
            "--extra-withholding",
            type=parse_decimal,
            default=Decimal("0"),
            help="Additional flat withholding per period",
        )

        # shift command
        shift = subparsers.add_parser(
            "shift",
            help="Itemize pay for a single shift",
        )
        shift.add_argument(
            "--start",
            type=parse_datetime,
            required=True,
            help="Shift start (ISO format)",
        )
        shift.add_argument(
            "--end",
            type=parse_datetime,
            required=True,
            help="Shift end (ISO format)",
        )
        shift.add_argument(
            "--base-rate",
            type=parse_decimal,
            required=True,
            help="Hourly base rate",
        )
        shift.add_argument(
            "--break-minutes",
            type=int,
            default=0,
            help="Unpaid break minutes",
        )
        shift.add_argument(
            "--casual-loading",
            type=parse_decimal,
            default=Decimal("0"),
            help="Casual loading as a fraction, e.g. 0.25",
        )
        shift.add_argument(
            "--overtime-threshold",
            type=parse_decimal,
            default=Decimal("8"),
            help="Daily overtime threshold in hours (default: 8)",
        )
        shift.add_argument(
            "--timezone",
            type=str,
            help="IANA timezone for day and window rules",
        )

        # sync command
        sync = subparsers.add_parser(
            "sync",
            help="Recompute and persist a pay period's totals",
        )
        sync.add_argument("period_id", type=parse_uuid, help="Pay period ID")
        sync.add_argument("--tax-year", type=str, help="Fiscal year such as 2024-25")

        # validate command
        validate = subparsers.add_parser(
            "validate",
            help="Compare a pay period's stored totals with a fresh recompute",
        )
        validate.add_argument("period_id", type=parse_uuid, help="Pay period ID")
        validate.add_argument("--tax-year", type=str, help="Fiscal year such as 2024-25")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        logging.basicConfig(
            level=get_settings().log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        # Dispatch to command handler
        handlers: dict[str, Callable[..., int]] = {
            "preview-tax": self._cmd_preview_tax,
            "shift": self._cmd_shift,
            "sync": self._cmd_sync,
            "validate": self._cmd_validate,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return handler(parsed)
        except PayrollError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 2

    def _cmd_preview_tax(self, args: argparse.Namespace) -> int:
        """Preview withholding with the bundled tables."""
        settings = get_settings()
        tax_year = normalize_tax_year(args.tax_year or settings.default_tax_year)
        profile = TaxWithholdingProfile(
            claimed_tax_free_threshold=args.claimed_threshold,
            is_foreign_resident=args.foreign_resident,
            has_tax_identifier=not args.no_tfn,
            medicare_exemption=MedicareExemption(args.medicare_exemption),
            has_study_loan=args.study_loan,
            extra_withholding=args.extra_withholding,
        )

        result = TaxCalculator(settings.fallback_scale).calculate_period_tax(
            args.gross,
            profile,
            PayFrequency(args.frequency.upper()),
            default_snapshot(tax_year),
        )
        self._print_json({"tax_year": tax_year, **result.to_dict()})
        return 0

    def _cmd_shift(self, args: argparse.Namespace) -> int:
        """Itemize one shift under an ad-hoc award."""
        award = Award(
            base_rate=args.base_rate,
            name="Command line award",
            casual_loading_rate=args.casual_loading,
            daily_overtime_threshold_hours=args.overtime_threshold,
            weekly_overtime_threshold_hours=None,
            timezone=args.timezone,
        )
        shift = Shift(
            id=uuid4(),
            owner_id=uuid4(),
            start=args.start,
            end=args.end,
            break_minutes=args.break_minutes,
        )

        breakdown = PayrollEngine().compute_shift(shift, award)
        self._print_json(breakdown.to_dict())
        return 0

    def _cmd_sync(self, args: argparse.Namespace) -> int:
        """Recompute and persist one pay period."""
        result = asyncio.run(self._with_synchronizer(lambda s: s.sync(args.period_id, args.tax_year)))
        self._print_json(result.to_dict())
        return 0

    def _cmd_validate(self, args: argparse.Namespace) -> int:
        """Report drift between stored and recomputed totals."""
        report = asyncio.run(
            self._with_synchronizer(lambda s: s.validate_totals(args.period_id, args.tax_year))
        )
        self._print_json(report.to_dict())
        return 0 if report.is_valid else 3

    @staticmethod
    async def _with_synchronizer(action: Callable[[PayPeriodSynchronizer], Any]) -> Any:
        try:
            async with get_session() as session:
                synchronizer = PayPeriodSynchronizer(
                    SqlAlchemyPayrollStore(session),
                    TaxCoefficientStore(SqlAlchemyRateTableSource(session)),
                )
                return await action(synchronizer)
        finally:
            await dispose_engine()

    @staticmethod
    def _print_json(data: dict[str, Any]) -> None:
        print(json.dumps(data, indent=2))


def main() -> int:
    """Main entry point."""
    cli = PayrollCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
