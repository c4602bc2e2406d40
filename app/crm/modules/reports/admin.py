from __future__ import annotations

import io
from datetime import date

from flask import Blueprint, current_app, request, send_file

from app.crm.audit import record_event
from app.crm.db import db_session
from app.crm.modules.reports.service import export_customers_csv, generate_reports, report_window
from app.crm.rbac import CUSTOMERS_EXPORT, REPORTS_VIEW, current_user, require_permission

bp = Blueprint("reports", __name__)


@bp.get("/reports")
@require_permission(REPORTS_VIEW)
def reports_index():
    window = report_window(
        request.args.get("start_date"),
        request.args.get("end_date"),
        default_days=current_app.config["REPORT_DEFAULT_DAYS"],
    )
    return generate_reports(db_session(), window)


@bp.get("/export/customers")
@require_permission(CUSTOMERS_EXPORT)
def customers_export():
    s = db_session()
    csv_data, row_count = export_customers_csv(s)
    fmt = (request.args.get("format") or "json").strip().lower()

    record_event(
        s,
        actor=current_user(),
        action="customer.export",
        entity_type="Customer",
        entity_id="export",
        metadata={"format": fmt, "row_count": row_count},
    )
    s.commit()

    if fmt == "csv":
        filename = f"customers_export_{date.today().strftime('%Y%m%d')}.csv"
        return send_file(
            io.BytesIO(csv_data.encode("utf-8")),
            mimetype="text/csv",
            as_attachment=True,
            download_name=filename,
            max_age=0,
        )
    return {"csv_data": csv_data}
