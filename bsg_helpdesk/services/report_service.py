from __future__ import annotations

import io
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func as sqlfunc
from sqlalchemy.orm import Session

from bsg_helpdesk.core.clock import utcnow
from bsg_helpdesk.models.organization import Department
from bsg_helpdesk.models.ticket import Ticket
from bsg_helpdesk.services.ticket_workflow import FINISHED_STATUSES


def _live_tickets(db: Session):
    return db.query(Ticket).filter(Ticket.is_deleted == False)  # noqa: E712


def ticket_summary(db: Session) -> Dict[str, Dict[str, int]]:
    by_status = dict(
        _live_tickets(db).with_entities(Ticket.status, sqlfunc.count(Ticket.id)).group_by(Ticket.status).all()
    )
    by_priority = dict(
        _live_tickets(db).with_entities(Ticket.priority, sqlfunc.count(Ticket.id)).group_by(Ticket.priority).all()
    )
    return {"by_status": by_status, "by_priority": by_priority}


def overdue_tickets(db: Session, now: Optional[datetime] = None, limit: int = 50) -> List[Ticket]:
    now = now or utcnow()
    return (
        _live_tickets(db)
        .filter(
            Ticket.sla_due_date.isnot(None),
            Ticket.sla_due_date < now,
            Ticket.status.notin_(FINISHED_STATUSES),
        )
        .order_by(Ticket.sla_due_date.asc())
        .limit(limit)
        .all()
    )


def dashboard(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    summary = ticket_summary(db)
    total = sum(summary["by_status"].values())
    open_count = sum(n for s, n in summary["by_status"].items() if s not in FINISHED_STATUSES)

    overdue = (
        _live_tickets(db)
        .filter(
            Ticket.sla_due_date.isnot(None),
            Ticket.sla_due_date < now,
            Ticket.status.notin_(FINISHED_STATUSES),
        )
        .count()
    )
    escalated = _live_tickets(db).filter(Ticket.escalated_at.isnot(None)).count()

    resolved = (
        _live_tickets(db)
        .filter(Ticket.resolved_at.isnot(None))
        .with_entities(Ticket.created_at, Ticket.resolved_at, Ticket.sla_due_date)
        .all()
    )
    with_sla = [r for r in resolved if r.sla_due_date is not None]
    met = sum(1 for r in with_sla if r.resolved_at <= r.sla_due_date)
    durations = [
        (r.resolved_at - r.created_at).total_seconds() / 3600 for r in resolved if r.created_at is not None
    ]

    by_department = (
        _live_tickets(db)
        .outerjoin(Department, Department.id == Ticket.department_id)
        .with_entities(Department.name, sqlfunc.count(Ticket.id))
        .group_by(Department.name)
        .all()
    )
    recent = _live_tickets(db).order_by(Ticket.created_at.desc(), Ticket.id.desc()).limit(10).all()

    return {
        "total_tickets": total,
        "open_tickets": open_count,
        "overdue_tickets": overdue,
        "escalated_tickets": escalated,
        "sla_compliance_rate": round(met / len(with_sla) * 100, 1) if with_sla else None,
        "avg_resolution_hours": round(sum(durations) / len(durations), 1) if durations else None,
        "by_status": summary["by_status"],
        "by_priority": summary["by_priority"],
        "by_department": {name or "Unassigned": count for name, count in by_department},
        "recent_tickets": recent,
    }


def _safe_filename_slug(text: str, max_len: int = 50) -> str:
    # ASCII-only filenames avoid header encoding issues across proxies/browsers.
    text = text.strip().lower()
    text = re.sub(r"[^a-z0-9\s-]", "", text)
    text = re.sub(r"\s+", "-", text).strip("-")
    return (text[:max_len] or "report").strip("-")


def build_report_filename(title: str, ext: str) -> str:
    slug = _safe_filename_slug(title)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M")
    return f"bsg-tickets-{slug}-{stamp}.{ext}"


def _bar_chart_png(title: str, counts: Dict[str, int]) -> bytes:
    # Lazy import: matplotlib can be heavy.
    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    labels = list(counts.keys())
    values = [counts[k] for k in labels]
    fig = plt.figure(figsize=(8.0, 4.0), dpi=150)
    try:
        ax = fig.add_subplot(111)
        ax.bar([str(v).replace("_", " ") for v in labels], values)
        ax.tick_params(axis="x", rotation=30)
        ax.set_title(title)
        ax.set_ylabel("Tickets")
        fig.tight_layout()
        buf = io.BytesIO()
        fig.savefig(buf, format="png")
        return buf.getvalue()
    finally:
        plt.close(fig)


def build_docx_report(
    *,
    title: str,
    stats: Dict[str, Any],
    overdue: List[Ticket],
    include_charts: bool = True,
) -> bytes:
    from docx import Document as DocxDocument
    from docx.shared import Inches

    doc = DocxDocument()

    doc.add_heading(title, level=0)
    doc.add_paragraph(datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC"))

    doc.add_heading("Summary", level=1)
    lines = [
        ("Total tickets", stats["total_tickets"]),
        ("Open tickets", stats["open_tickets"]),
        ("Overdue tickets", stats["overdue_tickets"]),
        ("Escalated tickets", stats["escalated_tickets"]),
        (
            "SLA compliance",
            f"{stats['sla_compliance_rate']}%" if stats["sla_compliance_rate"] is not None else "n/a",
        ),
        (
            "Average resolution",
            f"{stats['avg_resolution_hours']} h" if stats["avg_resolution_hours"] is not None else "n/a",
        ),
    ]
    for label, value in lines:
        p = doc.add_paragraph(f"{label}: {value}", style="List Bullet")
        p.paragraph_format.space_after = 0

    for heading, key in (("Tickets by status", "by_status"), ("Tickets by priority", "by_priority")):
        counts = stats.get(key) or {}
        doc.add_heading(heading, level=2)
        if not counts:
            doc.add_paragraph("No tickets.")
            continue
        table = doc.add_table(rows=1, cols=2)
        table.rows[0].cells[0].text = "Value"
        table.rows[0].cells[1].text = "Count"
        for name, count in sorted(counts.items()):
            row = table.add_row()
            row.cells[0].text = str(name)
            row.cells[1].text = str(count)
        if include_charts and key == "by_status":
            doc.add_picture(io.BytesIO(_bar_chart_png(heading, counts)), width=Inches(6.0))

    doc.add_heading("Overdue tickets", level=1)
    if not overdue:
        doc.add_paragraph("No ticket is past its SLA due date.")
    for t in overdue:
        due = t.sla_due_date.strftime("%Y-%m-%d %H:%M") if t.sla_due_date else "n/a"
        doc.add_paragraph(f"#{t.id} {t.title} ({t.priority}, {t.status}) due {due}", style="List Bullet")

    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()
