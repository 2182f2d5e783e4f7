"""
Settlement trigger endpoints.

An external scheduler may call POST /api/settlement/run instead of (or as
well as) the in-process scheduler or `flask ledger settle`. Repeated or
overlapping calls are safe.
"""
from flask import Blueprint, request, jsonify

from ..middleware.internal_auth import require_internal_token
from ..services.settlement_service import SettlementService

settlement_bp = Blueprint('settlement', __name__)


@settlement_bp.route('/run', methods=['POST'])
@require_internal_token
def run_settlement():
    """
    Query params:
        batch_size: Maximum entries to process this call (optional)
    """
    batch_size = request.args.get('batch_size', type=int)
    summary = SettlementService().run_settlement(batch_size=batch_size)
    return jsonify({'success': True, **summary})


@settlement_bp.route('/entries/<int:entry_id>', methods=['POST'])
@require_internal_token
def settle_entry(entry_id):
    """Settle a single entry if it is past the hold."""
    return jsonify(SettlementService().settle_entry(entry_id))
