# events/exporter.py
"""
Registration export: one flat row per (student, game type).

Read-only; rendered as CSV or as an XLSX workbook.
"""
import csv
import io

from django.http import HttpResponse
from openpyxl import Workbook
from openpyxl.styles import Font

from .models import EventRegistration, GameTypeEntry, TeamMember


EXPORT_COLUMNS = ["name", "group", "gameType", "teamName", "runOrder", "captain", "inviteCode", "status"]

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def export_rows(event, status=None):
    entries = (
        GameTypeEntry.objects
        .filter(registration__event=event, is_active=True)
        .exclude(registration__status=EventRegistration.STATUS_CANCELLED)
        .select_related("registration__student", "game_type", "team")
    )
    if status:
        entries = entries.filter(registration__status=status)

    seats = {
        (m.team_id, m.student_id): m
        for m in TeamMember.objects.filter(team__event=event)
    }

    rows = []
    for entry in entries:
        student = entry.registration.student
        seat = seats.get((entry.team_id, student.id)) if entry.team_id else None
        rows.append({
            "name": student.display_name,
            "group": entry.group,
            "gameType": entry.game_type.name,
            "teamName": entry.team.name if entry.team else "",
            "runOrder": seat.run_order if seat else "",
            "captain": bool(seat and seat.is_captain),
            "inviteCode": entry.team.invite_code if entry.team else "",
            "status": entry.registration.status,
        })

    rows.sort(key=lambda r: (r["gameType"], r["teamName"], r["runOrder"] or 0, r["name"]))
    return rows


def _filename(event, ext):
    return f"registrations_{event.id}.{ext}"


def render_csv(event, rows) -> HttpResponse:
    response = HttpResponse(content_type="text/csv; charset=utf-8")
    response["Content-Disposition"] = f'attachment; filename="{_filename(event, "csv")}"'
    # BOM so spreadsheet apps pick up UTF-8 names
    response.write("\ufeff")

    writer = csv.writer(response)
    writer.writerow(EXPORT_COLUMNS)
    for row in rows:
        writer.writerow([
            "yes" if row[col] is True else "no" if row[col] is False else row[col]
            for col in EXPORT_COLUMNS
        ])
    return response


def render_xlsx(event, rows) -> HttpResponse:
    wb = Workbook()
    ws = wb.active
    ws.title = "registrations"

    ws.append(EXPORT_COLUMNS)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in rows:
        ws.append([row[col] for col in EXPORT_COLUMNS])

    buffer = io.BytesIO()
    wb.save(buffer)

    response = HttpResponse(buffer.getvalue(), content_type=XLSX_CONTENT_TYPE)
    response["Content-Disposition"] = f'attachment; filename="{_filename(event, "xlsx")}"'
    return response
