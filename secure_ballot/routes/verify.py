from flask import Blueprint, current_app, jsonify, request

from secure_ballot import get_core

verify_bp = Blueprint('verify', __name__)


@verify_bp.route('/verify/<receipt_code>', methods=['GET'])
def verify_receipt(receipt_code):
    """Public receipt lookup for voters."""
    result = get_core(current_app).vote_service.verify_receipt(receipt_code)
    return jsonify(result), 200 if result['valid'] else 404


@verify_bp.route('/verify/api', methods=['POST'])
def verify_receipt_api():
    """API endpoint for receipt verification."""
    data = request.get_json(silent=True)

    if not data or 'receipt_code' not in data:
        return jsonify({
            'valid': False,
            'message': 'Receipt code is required.'
        }), 400

    result = get_core(current_app).vote_service.verify_receipt(str(data['receipt_code']))
    if not result['valid'] and result['message'] == 'Invalid receipt format.':
        return jsonify(result), 400
    return jsonify(result)
