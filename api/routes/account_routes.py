from flask import Blueprint, request, jsonify
from core.dependency_container import get_service
from core.exceptions import ValidationError
from service.account_service import AccountService

account_bp = Blueprint('accounts', __name__)

def get_account_service() -> AccountService:
    return get_service('account_service')

def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('body', '', 'a JSON object is required')
    if 'type' not in data:
        raise ValidationError('type', '', "'type' is required")
    return data

@account_bp.route('', methods=['POST'])
def create_account():
    """
    Provision a new account.

    Request body:
    {
        "type": "1" | "2" | "3" | "vmess" | "shadowsocks" | "sstp",
        "id": "string" (vmess),
        "password": "string" (shadowsocks, sstp),
        "username": "string",
        "deviceId": "string" (optional),
        "startDate": "string",
        "expireDate": "string",
        "note": "string" (sstp, optional)
    }
    """
    data = _json_body()
    account = get_account_service().create_account(data['type'], data)
    return jsonify({
        'message': 'Account created successfully',
        'account': account
    }), 201

@account_bp.route('', methods=['PUT'])
def edit_account():
    """Replace an account's settings; responds with the previous record."""
    data = _json_body()
    previous = get_account_service().edit_account(data['type'], data)
    return jsonify({
        'message': 'Account updated successfully',
        'previous': previous
    }), 200

@account_bp.route('', methods=['DELETE'])
def delete_account():
    """
    Revoke an account.

    Request body:
    {
        "type": "...",
        "id": "vmess id, shadowsocks password or sstp username",
        "deviceId": "string"
    }
    """
    data = _json_body()
    identity = str(data.get('id') or '').strip()
    if not identity:
        raise ValidationError('id', '', "'id' is required")
    deleted = get_account_service().delete_account(data['type'], identity, str(data.get('deviceId') or ''))
    return jsonify({
        'message': 'Account deleted successfully',
        'account': deleted
    }), 200

@account_bp.route('/<account_type>', methods=['GET'])
def list_accounts(account_type: str):
    accounts = get_account_service().list_accounts(account_type)
    return jsonify({'accounts': accounts, 'total': len(accounts)}), 200

@account_bp.route('/<account_type>/consistency', methods=['GET'])
def account_consistency(account_type: str):
    reports = get_account_service().check_consistency(account_type)
    return jsonify(reports[0]), 200

@account_bp.route('/<account_type>/<path:identity>/uri', methods=['GET'])
def account_uri(account_type: str, identity: str):
    """Share descriptor of an account; ``?locked=true`` binds it to the stored device."""
    locked = request.args.get('locked', 'false').lower() in ('1', 'true', 'yes')
    uri = get_account_service().account_uri(account_type, identity, locked=locked)
    return jsonify({'uri': uri, 'locked': locked}), 200
