import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session

from config import get_settings
from database import init_db, read_session
from models import DateBasis
from periods import Period, resolve_period
from schemas import (
    BudgetReport,
    BudgetReportRawData,
    MonthlyBudgetKpi,
    PostingRow,
    PurposeOverview,
    ReportRequest,
)
from services import BudgetReportService

logging.basicConfig(level=get_settings().log_level)

app = FastAPI(title="Budget Reports")


def get_db():
    yield from read_session()


@app.on_event("startup")
def startup_event():
    init_db()


def period_from_request(request: Request) -> Period:
    period_slug = request.query_params.get("period")
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    try:
        return resolve_period(period_slug, start, end)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post("/api/budget/report", response_model=BudgetReport)
def api_budget_report(data: ReportRequest, db: Session = Depends(get_db)):
    try:
        return BudgetReportService(db).get_report(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/budget/report/raw", response_model=BudgetReportRawData)
def api_budget_raw(
    request: Request,
    date_basis: DateBasis = DateBasis.booking,
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    try:
        return BudgetReportService(db).get_raw_data(period, date_basis)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/budget/report/kpi-monthly", response_model=MonthlyBudgetKpi)
def api_budget_kpi_monthly(
    as_of: Optional[date] = Query(default=None, alias="date"),
    date_basis: DateBasis = DateBasis.valuta,
    db: Session = Depends(get_db),
):
    return BudgetReportService(db).get_monthly_kpi(as_of, date_basis)


@app.get("/api/budget/report/unbudgeted", response_model=list[PostingRow])
def api_budget_unbudgeted(
    request: Request,
    date_basis: DateBasis = DateBasis.booking,
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    try:
        return BudgetReportService(db).get_unbudgeted_postings(period, date_basis)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/budget/report/export.csv")
def api_budget_export_csv(
    request: Request,
    date_basis: DateBasis = DateBasis.booking,
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    try:
        content = BudgetReportService(db).export_raw_data_csv(period, date_basis)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception("Error exporting budget raw data")
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    logging.info(
        f"budget_export: period={period.start}to{period.end} "
        f"basis={date_basis.value} size_bytes={len(content)}"
    )
    filename = f"budget_raw_{period.start}_{period.end}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/api/budget/purposes/overview", response_model=list[PurposeOverview])
def api_budget_purpose_overview(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    try:
        return BudgetReportService(db).list_purpose_overviews(period)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
