from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from config import get_settings
from csv_utils import export_raw_data
from models import DateBasis
from periods import Period, local_today, month_period, report_range
from reports import (
    build_monthly_kpi,
    build_purpose_overviews,
    build_raw_data,
    build_report,
    build_unbudgeted_postings,
)
from schemas import (
    BudgetReport,
    BudgetReportRawData,
    MonthlyBudgetKpi,
    PostingRow,
    PurposeOverview,
    ReportRequest,
)
from snapshot import load_snapshot

logger = logging.getLogger(__name__)


def get_current_user_id() -> int:
    return 1


class InvalidReportRequest(ValueError):
    pass


class BudgetReportService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _check_period(self, period: Period) -> None:
        if period.start > period.end:
            raise InvalidReportRequest("Start date must be before end date")

    def get_report(self, request: ReportRequest) -> BudgetReport:
        max_months = get_settings().max_report_months
        if not 1 <= request.months <= max_months:
            raise InvalidReportRequest(f"Months must be between 1 and {max_months}")
        if request.as_of is None:
            request = request.model_copy(update={"as_of": local_today()})

        period = report_range(request.as_of, request.months)
        snapshot = load_snapshot(self.session, self.user_id, period)
        report = build_report(snapshot, request)
        logger.info(
            f"report_built: owner={self.user_id} start={period.start} "
            f"end={period.end} interval={request.interval.value} "
            f"scope={request.value_scope.value} basis={request.date_basis.value} "
            f"postings={len(snapshot.postings)}"
        )
        return report

    def get_raw_data(
        self, period: Period, basis: DateBasis = DateBasis.booking
    ) -> BudgetReportRawData:
        self._check_period(period)
        snapshot = load_snapshot(self.session, self.user_id, period)
        raw = build_raw_data(snapshot, period, basis)
        logger.info(
            f"raw_data_built: owner={self.user_id} start={period.start} "
            f"end={period.end} basis={basis.value} "
            f"unbudgeted={len(raw.unbudgeted_postings)}"
        )
        return raw

    def get_monthly_kpi(
        self,
        as_of: Optional[date] = None,
        basis: DateBasis = DateBasis.valuta,
    ) -> MonthlyBudgetKpi:
        as_of = as_of or local_today()
        period = month_period(as_of)
        snapshot = load_snapshot(self.session, self.user_id, period)
        kpi = build_monthly_kpi(snapshot, as_of, basis)
        logger.info(
            f"kpi_built: owner={self.user_id} month={period.start:%Y-%m} "
            f"basis={basis.value}"
        )
        return kpi

    def get_unbudgeted_postings(
        self, period: Period, basis: DateBasis = DateBasis.booking
    ) -> list[PostingRow]:
        self._check_period(period)
        snapshot = load_snapshot(self.session, self.user_id, period)
        return build_unbudgeted_postings(snapshot, period, basis)

    def list_purpose_overviews(self, period: Period) -> list[PurposeOverview]:
        self._check_period(period)
        snapshot = load_snapshot(self.session, self.user_id, period)
        return build_purpose_overviews(snapshot, period)

    def export_raw_data_csv(
        self, period: Period, basis: DateBasis = DateBasis.booking
    ) -> str:
        return export_raw_data(self.get_raw_data(period, basis))
