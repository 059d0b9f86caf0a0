# demarcation/services/reports.py
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from demarcation.errors import NoDataError, UnsupportedFormatError, ValidationError
from demarcation.models import Circle, DemarcationLog, Plot, PlotStatus, Village
from demarcation.services.exporters import EXPORTERS
from demarcation.services.lifecycle import OPEN_STATUSES
from demarcation.services.officer_metrics import get_officer_performance
from demarcation.services.stats import mean, resolution_days

logger = logging.getLogger(__name__)

DATE_FORMAT = "%d-%m-%Y"

REPORT_TITLES = {
    "plotStatus": "Plot Status Report",
    "officerPerformance": "Officer Performance Report",
    "villageStats": "Village Statistics Report",
}
_ALIASES = {
    "plot-status": "plotStatus",
    "officer-performance": "officerPerformance",
    "village-stats": "villageStats",
}


@dataclass
class ReportFile:
    filename: str
    media_type: str
    content: bytes


def normalize_report_type(report_type: str) -> str:
    value = (report_type or "").strip()
    value = _ALIASES.get(value.lower(), value)
    if value not in REPORT_TITLES:
        raise ValidationError(
            f"Unknown report type '{report_type}'. Allowed: {', '.join(REPORT_TITLES)}"
        )
    return value


def _date_bounds(date_from: Optional[date], date_to: Optional[date]) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Inclusive calendar range turned into [start, end) datetimes."""
    if date_from and date_to and date_from > date_to:
        raise ValidationError("dateFrom must not be after dateTo")
    start = datetime.combine(date_from, time.min) if date_from else None
    end = datetime.combine(date_to + timedelta(days=1), time.min) if date_to else None
    return start, end


def _fmt(value: Optional[datetime]) -> str:
    return value.strftime(DATE_FORMAT) if value else ""


def _in_range(query, start, end):
    if start is not None:
        query = query.where(Plot.created_at >= start)
    if end is not None:
        query = query.where(Plot.created_at < end)
    return query


async def _plot_status_rows(session: AsyncSession, start, end) -> List[Dict[str, Any]]:
    query = (
        select(Plot, Village.name, Circle.name)
        .outerjoin(Village, Village.id == Plot.village_id)
        .outerjoin(Circle, Circle.id == Plot.circle_id)
        .order_by(desc(Plot.created_at), desc(Plot.id))
    )
    result = await session.execute(_in_range(query, start, end))
    return [
        {
            "reference": plot.reference,
            "plot_number": plot.plot_number,
            "village_name": village_name or "",
            "circle_name": circle_name or "",
            "owner_name": plot.owner_name or "",
            "area": plot.area,
            "area_unit": plot.area_unit,
            "status": plot.current_status,
            "priority": plot.priority,
            "duplicate": "Yes" if plot.is_duplicate else "No",
            "created_date": _fmt(plot.created_at),
        }
        for plot, village_name, circle_name in result.all()
    ]


async def _officer_performance_rows(session: AsyncSession, start, end) -> List[Dict[str, Any]]:
    performance = await get_officer_performance(session, created_from=start, created_to=end)
    # only officers with plots in the range
    return [
        {
            "officer_name": row["name"],
            "circle_name": row["circle"] or "",
            "completed_plots": row["completed_plots"],
            "pending_plots": row["pending_plots"],
            "efficiency": f"{row['efficiency']}%",
            "avg_time_per_plot": row["avg_time_per_plot"],
            "last_activity": _fmt(row["last_activity"]),
        }
        for row in performance
        if row["total_plots"]
    ]


async def _village_stats_rows(session: AsyncSession, start, end) -> List[Dict[str, Any]]:
    query = (
        select(Plot.id, Plot.current_status, Plot.created_at, Village.id, Village.name, Circle.name)
        .outerjoin(Village, Village.id == Plot.village_id)
        .outerjoin(Circle, Circle.id == Village.circle_id)
    )
    plots = (await session.execute(_in_range(query, start, end))).all()
    if not plots:
        return []

    done_query = (
        select(DemarcationLog.plot_id, DemarcationLog.created_at)
        .where(
            DemarcationLog.plot_id.in_([row[0] for row in plots]),
            DemarcationLog.status == PlotStatus.COMPLETED.value,
            DemarcationLog.is_deleted.is_(False),
        )
    )
    completed_at = {plot_id: when for plot_id, when in (await session.execute(done_query)).all()}

    # keyed by village id; same-named villages in different circles stay apart
    villages: Dict[Optional[int], Dict[str, Any]] = {}
    for plot_id, status, created_at, village_id, village_name, circle_name in plots:
        bucket = villages.setdefault(village_id, {
            "name": village_name or "unknown", "circle": circle_name or "", "total": 0, "completed": 0, "pending": 0, "durations": [],
        })
        bucket["total"] += 1
        if status == PlotStatus.COMPLETED.value:
            bucket["completed"] += 1
        elif status in OPEN_STATUSES:
            bucket["pending"] += 1
        bucket["durations"].append(resolution_days(completed_at.get(plot_id), created_at))

    rows = []
    for bucket in sorted(villages.values(), key=lambda b: (b["name"], b["circle"])):
        avg_days = mean(bucket["durations"])
        rows.append({
            "village_name": bucket["name"],
            "circle_name": bucket["circle"],
            "total_plots": bucket["total"],
            "completed_plots": bucket["completed"],
            "pending_plots": bucket["pending"],
            "avg_resolution_days": round(avg_days, 1) if avg_days is not None else "",
        })
    return rows


_BUILDERS = {
    "plotStatus": _plot_status_rows,
    "officerPerformance": _officer_performance_rows,
    "villageStats": _village_stats_rows,
}


async def generate_report(
    session: AsyncSession,
    report_type: str,
    fmt: str = "csv",
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> ReportFile:
    report_type = normalize_report_type(report_type)
    exporter = EXPORTERS.get((fmt or "").strip().lower())
    if exporter is None:
        raise UnsupportedFormatError(f"Unsupported format '{fmt}'. Allowed: csv, excel, pdf")
    start, end = _date_bounds(date_from, date_to)

    rows = await _BUILDERS[report_type](session, start, end)
    if not rows:
        raise NoDataError()

    title = REPORT_TITLES[report_type]
    content = exporter.render(title, rows)
    filename = f"{report_type}_{date.today().isoformat()}.{exporter.extension}"
    logger.info("report %s generated as %s (%d rows, %d bytes)", report_type, exporter.extension, len(rows), len(content))
    return ReportFile(filename=filename, media_type=exporter.media_type, content=content)
