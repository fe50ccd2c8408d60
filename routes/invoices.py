from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from io import BytesIO

from flask import Blueprint, current_app, jsonify, render_template, request, send_file
from flask_jwt_extended import jwt_required
from xhtml2pdf import pisa

from handover import (
    create_invoice,
    delete_invoice,
    get_invoice,
    invoice_totals,
    list_invoices,
    update_invoice,
)
from progress_summary import current_progress
from routes.auth import DOMAIN_ERRORS, current_user, error_response, request_payload, require_permission
from schemas import InvoiceSchema

bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")
invoice_schema = InvoiceSchema()
invoices_schema = InvoiceSchema(many=True)

_CURRENCY_QUANT = Decimal("0.01")


def _format_currency(value) -> str:
    if value is None:
        return "-"
    try:
        amount = Decimal(str(value)).quantize(_CURRENCY_QUANT)
    except (InvalidOperation, ValueError):
        return "-"
    return f"Rp {amount:,.2f}"


def _format_date(value) -> str:
    if not value:
        return "-"
    try:
        return value.strftime("%d %b %Y")
    except AttributeError:
        return str(value)


def _payment_status_filter():
    value = request.args.get("payment_status")
    if value is None or value == "":
        return None
    return value.strip().lower() in {"1", "true", "paid", "yes"}


@bp.get("")
@jwt_required()
def list_all():
    error = require_permission("view_invoices")
    if error:
        return error
    invoices = list_invoices(
        payment_status=_payment_status_filter(),
        bastp_id=request.args.get("bastp_id", type=int),
        search=request.args.get("q"),
    )
    return jsonify(invoices_schema.dump(invoices))


@bp.get("/<int:invoice_id>")
@jwt_required()
def get_one(invoice_id):
    error = require_permission("view_invoices")
    if error:
        return error
    try:
        invoice = get_invoice(invoice_id)
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify(invoice_schema.dump(invoice))


@bp.post("")
@jwt_required()
def create():
    try:
        invoice = create_invoice(current_user(), request_payload())
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify(invoice_schema.dump(invoice)), 201


@bp.patch("/<int:invoice_id>")
@jwt_required()
def update(invoice_id):
    try:
        invoice = update_invoice(current_user(), invoice_id, request_payload())
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify(invoice_schema.dump(invoice))


@bp.delete("/<int:invoice_id>")
@jwt_required()
def delete(invoice_id):
    try:
        delete_invoice(current_user(), invoice_id)
    except DOMAIN_ERRORS as exc:
        return error_response(exc)
    return jsonify({"msg": "Invoice deleted"})


@bp.get("/<int:invoice_id>/print")
@jwt_required()
def print_invoice(invoice_id):
    error = require_permission("view_invoices")
    if error:
        return error
    try:
        invoice = get_invoice(invoice_id)
    except DOMAIN_ERRORS as exc:
        return error_response(exc)

    bastp = invoice.bastp
    work_lines = [
        {
            "description": detail.description,
            "location": detail.work_location or "",
            "quantity": detail.quantity,
            "uom": detail.uom or "",
            "progress": current_progress(detail.progress_reports).value,
            "closed_on": detail.actual_close_date,
        }
        for detail in bastp.work_details
    ]
    html = render_template(
        "invoices/invoice_print.html",
        invoice=invoice,
        bastp=bastp,
        work_lines=work_lines,
        services=bastp.general_services,
        totals=invoice_totals(invoice),
        company={
            "name": current_app.config.get("COMPANY_NAME"),
            "address": current_app.config.get("COMPANY_ADDRESS"),
        },
        generated_at=datetime.utcnow(),
        format_currency=_format_currency,
        format_date=_format_date,
    )

    pdf_buffer = BytesIO()
    pdf_status = pisa.CreatePDF(html, dest=pdf_buffer)
    if pdf_status.err:
        current_app.logger.error("Failed to generate invoice PDF for invoice %s", invoice_id)
        return jsonify({"msg": "Unable to generate the invoice PDF at this time."}), 500

    pdf_buffer.seek(0)
    filename = re.sub(r"[^A-Za-z0-9._-]", "_", f"INV-{invoice.invoice_number or invoice.id}.pdf")
    return send_file(
        pdf_buffer,
        mimetype="application/pdf",
        as_attachment=True,
        download_name=filename,
    )
