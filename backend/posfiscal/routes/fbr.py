# Overview: Flask API routes for FBR reporting; parses input and returns JSON responses.

# backend/posfiscal/routes/fbr.py
"""FBR Digital Invoicing API routes (service-token protected)"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_service_token
from ..extensions import db
from ..models import FbrQueueItem, Organization, Sale
from ..services import fbr_config_service, fbr_queue_service, submission_service
from ..services.fbr_client import FbrClient
from ..services.fbr_config_service import FbrConfigError
from ..services.fbr_errors import NOT_CONFIGURED_MESSAGE
from ..services.submission_service import SubmissionError


fbr_bp = Blueprint("fbr", __name__, url_prefix="/api/fbr")


def _optional_bool(data: dict, key: str):
    value = data.get(key)
    if value is None or isinstance(value, bool):
        return value
    raise FbrConfigError(f"{key} must be a boolean")


@fbr_bp.post("/sales/<int:sale_id>/submit")
@require_service_token
def submit_sale_route(sale_id: int):
    """
    Report a finalized sale to FBR.

    Always 200 for a known sale; the body's status is synced, queued or failed.
    """
    try:
        outcome = submission_service.submit_sale_for_compliance(sale_id)
        return jsonify({"result": outcome.to_dict()}), 200

    except SubmissionError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to submit sale to FBR")
        return jsonify({"error": "Internal server error"}), 500


@fbr_bp.get("/sales/<int:sale_id>")
@require_service_token
def get_sale_status_route(sale_id: int):
    """Sale FBR status with its queue history."""
    sale = db.session.get(Sale, sale_id)
    if not sale:
        return jsonify({"error": "Sale not found"}), 404

    items = (
        db.session.query(FbrQueueItem)
        .filter_by(sale_id=sale_id)
        .order_by(FbrQueueItem.created_at.asc(), FbrQueueItem.id.asc())
        .all()
    )
    return jsonify({
        "sale": {
            "id": sale.id,
            "invoice_number": sale.invoice_number,
            "fbr_status": sale.fbr_status,
            "fbr_invoice_number": sale.fbr_invoice_number,
            "fbr_dated": sale.fbr_dated,
            "fbr_error": sale.fbr_error,
        },
        "queue_items": [item.to_dict() for item in items],
    }), 200


@fbr_bp.get("/orgs/<int:org_id>/config")
@require_service_token
def get_config_route(org_id: int):
    config = fbr_config_service.get_config(org_id)
    if not config:
        return jsonify({"error": "FBR not configured"}), 404
    return jsonify({"config": config.to_dict()}), 200


@fbr_bp.put("/orgs/<int:org_id>/config")
@require_service_token
def update_config_route(org_id: int):
    """
    Create or update the tenant's FBR credentials.

    Body: bearer_token (required on first save), sandbox_mode, is_active.
    """
    try:
        data = request.get_json() or {}
        token = data.get("bearer_token")
        if token is not None and not isinstance(token, str):
            return jsonify({"error": "bearer_token must be a string"}), 400

        config = fbr_config_service.configure_tenant(
            org_id,
            bearer_token=token,
            sandbox_mode=_optional_bool(data, "sandbox_mode"),
            is_active=_optional_bool(data, "is_active"),
        )
        return jsonify({"config": config.to_dict()}), 200

    except FbrConfigError as e:
        if str(e) == "Organization not found":
            return jsonify({"error": str(e)}), 404
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update FBR config")
        return jsonify({"error": "Internal server error"}), 500


@fbr_bp.post("/orgs/<int:org_id>/test-connection")
@require_service_token
def test_connection_route(org_id: int):
    credentials = fbr_config_service.get_active_credentials(org_id)
    if credentials is None:
        return jsonify({"success": False, "error": NOT_CONFIGURED_MESSAGE}), 400

    result = FbrClient.for_tenant(credentials).test_connection()
    return jsonify(result), 200


@fbr_bp.get("/orgs/<int:org_id>/reference/<string:kind>")
@require_service_token
def reference_data_route(org_id: int, kind: str):
    """
    FBR reference data for autocomplete (provinces, document_types, hs_codes,
    uom, transaction_types, sro_schedule). Query args are passed through.
    """
    credentials = fbr_config_service.get_active_credentials(org_id)
    if credentials is None:
        return jsonify({"success": False, "data": None, "error": NOT_CONFIGURED_MESSAGE}), 400

    client = FbrClient.for_tenant(credentials)
    params = request.args.to_dict() or None
    result = client.reference_data(kind, params=params)

    if result.success:
        return jsonify(result.to_dict()), 200
    if result.error == "Invalid reference data type":
        return jsonify(result.to_dict()), 404
    return jsonify(result.to_dict()), 502


@fbr_bp.get("/orgs/<int:org_id>/stats")
@require_service_token
def stats_route(org_id: int):
    if not db.session.get(Organization, org_id):
        return jsonify({"error": "Organization not found"}), 404
    return jsonify(fbr_queue_service.queue_statistics(org_id)), 200


@fbr_bp.post("/orgs/<int:org_id>/retry-failed")
@require_service_token
def retry_failed_route(org_id: int):
    """Resubmit failed sales. Body: optional sale_ids list."""
    try:
        data = request.get_json(silent=True) or {}
        sale_ids = data.get("sale_ids")
        if sale_ids is not None and (
            not isinstance(sale_ids, list) or not all(isinstance(i, int) for i in sale_ids)
        ):
            return jsonify({"error": "sale_ids must be a list of integers"}), 400

        outcomes = submission_service.retry_failed_sales(org_id, sale_ids)
        return jsonify({
            "retried": len(outcomes),
            "synced": sum(1 for o in outcomes if o.status == submission_service.OUTCOME_SYNCED),
            "results": [o.to_dict() for o in outcomes],
        }), 200

    except Exception:
        current_app.logger.exception("Failed to retry FBR submissions")
        return jsonify({"error": "Internal server error"}), 500


@fbr_bp.post("/queue/process")
@require_service_token
def process_queue_route():
    """Run one retry queue pass (same as the scheduled CLI job)."""
    try:
        data = request.get_json(silent=True) or {}
        batch_size = data.get("batch_size")
        if batch_size is not None and (not isinstance(batch_size, int) or isinstance(batch_size, bool) or batch_size < 1):
            return jsonify({"error": "batch_size must be a positive integer"}), 400

        summary = fbr_queue_service.process_retry_queue(batch_size)
        return jsonify({"summary": summary.to_dict()}), 200

    except Exception:
        current_app.logger.exception("Failed to process FBR queue")
        return jsonify({"error": "Internal server error"}), 500
