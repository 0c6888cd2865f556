import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from jinja2 import Environment, FileSystemLoader, select_autoescape

from models import RecordKind

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

REPORT_TITLES = {
    RecordKind.expense: "Expense Report",
    RecordKind.income: "Income Report",
    RecordKind.saving: "Saving Goals Report",
}

REPORT_COLUMNS = {
    RecordKind.expense: ["Date", "Amount", "Description", "Note"],
    RecordKind.income: ["Date", "Amount", "Source", "Note"],
    RecordKind.saving: ["Title", "Target", "Current", "Progress", "Deadline", "Note"],
}

REPORT_CSS = """
    @page {
        size: A4;
        margin: 18mm 16mm 20mm 16mm;
        @bottom-center {
            content: "Page " counter(page) " of " counter(pages);
            color: #64748b;
            font-size: 9pt;
        }
    }
    html, body {
        margin: 0;
        padding: 0;
        color: #0f172a;
        font-family: sans-serif;
        font-size: 10pt;
    }
    h1 {
        text-align: center;
        font-size: 18pt;
    }
    table {
        width: 100%;
        border-collapse: collapse;
    }
    th, td {
        border-bottom: 1px solid #e2e8f0;
        padding: 2mm;
        text-align: left;
    }
    td.num {
        text-align: right;
    }
"""


class ReportUnavailable(RuntimeError):
    pass


def format_amount(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return f"{value:,.2f}"


def format_date(value: Optional[datetime]) -> str:
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d")


def _text(value: Optional[str]) -> str:
    return value or "-"


def build_rows(kind: RecordKind, records: Sequence) -> list[list[str]]:
    if kind == RecordKind.expense:
        return [
            [
                format_date(r.date),
                format_amount(r.amount),
                _text(r.description),
                _text(r.note),
            ]
            for r in records
        ]
    if kind == RecordKind.income:
        return [
            [
                format_date(r.date),
                format_amount(r.amount),
                _text(r.source),
                _text(r.note),
            ]
            for r in records
        ]
    rows = []
    for goal in records:
        progress = goal.progress
        rows.append(
            [
                _text(goal.title),
                format_amount(goal.target_amount),
                format_amount(goal.current_amount),
                f"{progress}%" if progress is not None else "-",
                format_date(goal.deadline),
                _text(goal.note),
            ]
        )
    return rows


def _environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(["html"]),
    )
    return env


def render_report_html(
    kind: RecordKind,
    records: Sequence,
    *,
    generated_at: Optional[datetime] = None,
) -> str:
    columns = REPORT_COLUMNS[kind]
    return (
        _environment()
        .get_template("report.html")
        .render(
            title=REPORT_TITLES[kind],
            columns=columns,
            numeric_columns={"Amount", "Target", "Current", "Progress"},
            rows=build_rows(kind, records),
            generated_at=generated_at or datetime.now(),
        )
    )


def render_pdf(html: str) -> bytes:
    try:
        from weasyprint import CSS, HTML
        from weasyprint.text.fonts import FontConfiguration
    except Exception as exc:
        raise ReportUnavailable(
            "PDF export requires WeasyPrint system dependencies; install them for your OS and retry."
        ) from exc

    font_config = FontConfiguration()
    css = CSS(string=REPORT_CSS, font_config=font_config)
    return HTML(string=html).write_pdf(stylesheets=[css], font_config=font_config)


def build_report(kind: RecordKind, records: Sequence) -> bytes:
    start_time = datetime.now()
    html = render_report_html(kind, records)
    pdf_bytes = render_pdf(html)
    duration = (datetime.now() - start_time).total_seconds()
    logger.info(
        f"report_generated: kind={kind.value} rows={len(records)} "
        f"pdf_size_bytes={len(pdf_bytes)} pdf_duration={duration:.2f}s"
    )
    return pdf_bytes
