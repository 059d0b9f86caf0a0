"""Dashboard statistics, distributions, officer performance and report exports."""

import csv
import io
from datetime import date, timedelta

import pytest
from openpyxl import load_workbook

from demarcation.errors import NoDataError, UnsupportedFormatError, ValidationError
from demarcation.models import Plot, Village, utcnow
from demarcation.services import exporters, officer_metrics, plots, reports, stats
from demarcation.services.scoping import Scope


async def _plot(session, world, actor, village, number):
    return await plots.create_plot(session, actor, {
        "plot_number": number,
        "village_id": village.id,
        "area": 1.0,
        "request_type": "new_demarcation",
    })


async def _age(session, plot_id, days):
    """Pretend a plot was created `days` ago."""
    plot = await session.get(Plot, plot_id)
    plot.created_at = utcnow() - timedelta(days=days)
    await session.commit()


# ═══════════════════════════════════════════════════
# Dashboard + distribution
# ═══════════════════════════════════════════════════

class TestDashboardStats:

    async def test_empty_database(self, session, world):
        result = await stats.get_dashboard_stats(session, Scope.unrestricted())
        assert result["total_plots"] == 0
        assert result["completion_rate"] == "0%"
        assert result["average_resolution_days"] == 0.0

    async def test_counts_and_rates(self, session, world):
        done = await _plot(session, world, world.citizen, world.narnaul, "S-1")
        await _plot(session, world, world.citizen, world.narnaul, "S-1")  # duplicate
        await _plot(session, world, world.other_citizen, world.rewari, "S-2")
        await _age(session, done.id, 4)

        await plots.assign_officer(session, world.supervisor, done.id, world.officer.id)
        await plots.update_status(session, world.officer, done.id, "completed")

        result = await stats.get_dashboard_stats(session, Scope.unrestricted())
        assert result["total_plots"] == 3
        assert result["completed_plots"] == 1
        assert result["pending_plots"] == 2
        assert result["total_villages"] == 2
        assert result["active_officers"] == 1
        assert result["duplicates"] == 1
        assert result["completion_rate"] == "33%"
        assert result["average_resolution_days"] == pytest.approx(4.0, abs=0.1)

    async def test_citizen_stats_are_scoped(self, session, world):
        await _plot(session, world, world.citizen, world.narnaul, "C-1")
        await _plot(session, world, world.other_citizen, world.narnaul, "C-2")

        result = await stats.get_dashboard_stats(session, Scope.for_user(world.citizen))
        assert result["total_plots"] == 1


class TestDistribution:

    async def test_by_status(self, session, world):
        first = await _plot(session, world, world.citizen, world.narnaul, "D-1")
        await _plot(session, world, world.citizen, world.narnaul, "D-2")
        await plots.update_status(session, world.supervisor, first.id, "in_progress")

        result = await stats.get_distribution(session, "status")
        assert result == [{"name": "in_progress", "count": 1}, {"name": "pending", "count": 1}]

    async def test_by_village_sorted_by_count(self, session, world):
        await _plot(session, world, world.citizen, world.rewari, "V-1")
        await _plot(session, world, world.citizen, world.narnaul, "V-2")
        await _plot(session, world, world.citizen, world.narnaul, "V-3")

        result = await stats.get_distribution(session, "village")
        assert result == [{"name": "Narnaul", "count": 2}, {"name": "Rewari", "count": 1}]

    async def test_missing_circle_is_unknown(self, session, world):
        plot = await _plot(session, world, world.citizen, world.narnaul, "U-1")
        row = await session.get(Plot, plot.id)
        row.circle_id = None
        await session.commit()

        result = await stats.get_distribution(session, "circle")
        assert result == [{"name": "unknown", "count": 1}]

    async def test_same_named_villages_stay_apart(self, session, world):
        twin = Village(name="Narnaul", code="NRN-R", circle_id=world.rewari_circle.id)
        session.add(twin)
        await session.commit()

        await _plot(session, world, world.citizen, world.narnaul, "T-1")
        await _plot(session, world, world.citizen, world.narnaul, "T-2")
        await _plot(session, world, world.citizen, twin, "T-3")

        result = await stats.get_distribution(session, "village")
        assert result == [{"name": "Narnaul", "count": 2}, {"name": "Narnaul", "count": 1}]

        report = await reports.generate_report(session, "villageStats", "csv")
        rows = list(csv.DictReader(io.StringIO(report.content.decode())))
        assert [(r["village_name"], r["circle_name"], r["total_plots"]) for r in rows] == [
            ("Narnaul", "Narnaul Circle", "2"),
            ("Narnaul", "Rewari Circle", "1"),
        ]

    async def test_unknown_dimension(self, session, world):
        with pytest.raises(ValidationError):
            await stats.get_distribution(session, "colour")


# ═══════════════════════════════════════════════════
# Officer performance
# ═══════════════════════════════════════════════════

class TestOfficerPerformance:

    def test_efficiency_zero_denominator(self):
        assert officer_metrics.efficiency(0, 0) == 0
        assert officer_metrics.efficiency(1, 2) == 33
        assert officer_metrics.efficiency(1, 1) == 50

    async def test_idle_officer_has_zero_efficiency(self, session, world):
        result = await officer_metrics.get_officer_performance(session)
        idle = next(row for row in result if row["id"] == world.idle_officer.id)

        assert idle["completed_plots"] == 0
        assert idle["pending_plots"] == 0
        assert idle["efficiency"] == 0
        assert idle["avg_time_per_plot"] == "N/A"
        assert idle["last_activity"] is None

    async def test_sorted_by_efficiency(self, session, world):
        done = await _plot(session, world, world.citizen, world.narnaul, "P-1")
        open_ = await _plot(session, world, world.citizen, world.narnaul, "P-2")
        await _age(session, done.id, 3)
        await plots.assign_officer(session, world.supervisor, done.id, world.officer.id)
        await plots.assign_officer(session, world.supervisor, open_.id, world.officer.id)
        await plots.update_status(session, world.officer, done.id, "completed")

        result = await officer_metrics.get_officer_performance(session)
        assert result[0]["id"] == world.officer.id
        assert result[0]["completed_plots"] == 1
        assert result[0]["pending_plots"] == 1
        assert result[0]["efficiency"] == 50
        assert result[0]["avg_time_per_plot"] == "3 days"
        assert result[0]["circle"] == "Narnaul Circle"
        assert {row["id"] for row in result} == {
            world.officer.id, world.idle_officer.id, world.rewari_officer.id,
        }

    async def test_calculate_metrics_for_one_officer(self, session, world):
        metrics = await officer_metrics.calculate_metrics(session, world.rewari_officer.id)
        assert metrics["name"] == "Meena Rao"


# ═══════════════════════════════════════════════════
# Reports + exporters
# ═══════════════════════════════════════════════════

class TestReports:

    async def test_plot_status_csv_round_trip(self, session, world):
        await _plot(session, world, world.citizen, world.narnaul, "R-1")
        await _plot(session, world, world.citizen, world.rewari, "R-2")

        report = await reports.generate_report(session, "plotStatus", "csv")
        assert report.media_type == "text/csv"
        assert report.filename.endswith(".csv")

        text = report.content.decode("utf-8")
        assert text.startswith('"reference","plot_number"')
        parsed = list(csv.DictReader(io.StringIO(text)))
        assert len(parsed) == 2
        assert {row["plot_number"] for row in parsed} == {"R-1", "R-2"}
        assert set(parsed[0]) == {
            "reference", "plot_number", "village_name", "circle_name", "owner_name",
            "area", "area_unit", "status", "priority", "duplicate", "created_date",
        }

    async def test_no_plots_in_range(self, session, world):
        await _plot(session, world, world.citizen, world.narnaul, "R-1")
        past = date.today() - timedelta(days=30)
        with pytest.raises(NoDataError) as exc:
            await reports.generate_report(session, "plotStatus", "csv", past, past + timedelta(days=1))
        assert exc.value.status_code == 404

    async def test_date_range_is_inclusive(self, session, world):
        await _plot(session, world, world.citizen, world.narnaul, "R-1")
        today = utcnow().date()
        report = await reports.generate_report(session, "plot-status", "csv", today, today)
        assert len(list(csv.DictReader(io.StringIO(report.content.decode())))) == 1

    async def test_unsupported_format(self, session, world):
        await _plot(session, world, world.citizen, world.narnaul, "R-1")
        with pytest.raises(UnsupportedFormatError):
            await reports.generate_report(session, "plotStatus", "docx")

    async def test_unknown_report_type(self, session, world):
        with pytest.raises(ValidationError):
            await reports.generate_report(session, "taxReceipts", "csv")

    async def test_village_stats(self, session, world):
        await _plot(session, world, world.citizen, world.narnaul, "R-1")
        await _plot(session, world, world.citizen, world.narnaul, "R-2")
        report = await reports.generate_report(session, "villageStats", "csv")
        rows = list(csv.DictReader(io.StringIO(report.content.decode())))
        assert rows == [{
            "village_name": "Narnaul",
            "circle_name": "Narnaul Circle",
            "total_plots": "2",
            "completed_plots": "0",
            "pending_plots": "2",
            "avg_resolution_days": "",
        }]

    async def test_officer_performance_excel(self, session, world):
        narnaul = await _plot(session, world, world.citizen, world.narnaul, "E-1")
        rewari = await _plot(session, world, world.citizen, world.rewari, "E-2")
        await plots.assign_officer(session, world.supervisor, narnaul.id, world.officer.id)
        await plots.assign_officer(session, world.supervisor, rewari.id, world.rewari_officer.id)

        report = await reports.generate_report(session, "officerPerformance", "excel")
        assert report.filename.endswith(".xlsx")

        ws = load_workbook(io.BytesIO(report.content)).active
        header = [cell.value for cell in ws[1]]
        assert header[0] == "officer_name"
        assert ws["A1"].font.bold
        # idle officer has no plots and is left out
        assert ws.max_row == 3
        assert {ws.cell(row=r, column=1).value for r in (2, 3)} == {"Suresh Yadav", "Meena Rao"}

    async def test_officer_performance_outside_range(self, session, world):
        plot = await _plot(session, world, world.citizen, world.narnaul, "E-1")
        await plots.assign_officer(session, world.supervisor, plot.id, world.officer.id)

        far = date.today() - timedelta(days=3650)
        with pytest.raises(NoDataError):
            await reports.generate_report(session, "officerPerformance", "csv", far, far)

    async def test_officer_performance_without_assignments(self, session, world):
        await _plot(session, world, world.citizen, world.narnaul, "E-1")
        with pytest.raises(NoDataError):
            await reports.generate_report(session, "officerPerformance", "csv")

    async def test_pdf(self, session, world):
        await _plot(session, world, world.citizen, world.narnaul, "R-1")
        report = await reports.generate_report(session, "plotStatus", "pdf")
        assert report.media_type == "application/pdf"
        assert report.content.startswith(b"%PDF")


class TestExporters:

    ROWS = [{"name": "Narnaul, East", "count": 2}, {"name": 'Say "hi"', "count": 1}]

    def test_csv_quotes_every_field(self):
        text = exporters.to_csv("Villages", self.ROWS).decode()
        lines = text.split("\r\n")
        assert lines[0] == '"name","count"'
        assert lines[1] == '"Narnaul, East","2"'
        assert lines[2] == '"Say ""hi""","1"'

    def test_excel_header_is_styled(self):
        ws = load_workbook(io.BytesIO(exporters.to_excel("Villages", self.ROWS))).active
        assert ws["A1"].font.bold
        assert ws["A1"].fill.start_color.rgb.endswith("D3D3D3")
        assert ws.column_dimensions["A"].width >= len("Narnaul, East")

    def test_xlsx_alias(self):
        assert exporters.EXPORTERS["xlsx"] is exporters.EXPORTERS["excel"]
