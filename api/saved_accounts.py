from __future__ import annotations

from flask import Blueprint, request, jsonify, g, abort

from models.schemas.auth import DeviceOutSchema, SavedAccountOutSchema
from services import sessions
from utils.decorators import jwt_required

bp = Blueprint("saved_accounts", __name__)

saved_list_schema = SavedAccountOutSchema(many=True)
device_list_schema = DeviceOutSchema(many=True)


def require_device_id() -> str:
    device_id = (request.args.get("deviceId") or "").strip()
    if not device_id:
        abort(400, description="deviceId query parameter is required")
    return device_id


@bp.get("/saved-accounts")
def list_saved_accounts():
    """
    Accounts saved on a device, for the account picker
    ---
    tags:
      - Saved accounts
    parameters:
      - in: query
        name: deviceId
        type: string
        required: true
    responses:
      200: { description: OK }
      400: { description: deviceId missing }
    """
    device_id = require_device_id()
    rows = sessions.saved_accounts(device_id)
    return jsonify({"success": True, "data": saved_list_schema.dump(rows)}), 200


@bp.delete("/saved-accounts/<user_id>")
@jwt_required()
def remove_saved_account(user_id: str):
    """
    Remove the signed-in account from a device
    ---
    tags:
      - Saved accounts
    security:
      - Bearer: []
    parameters:
      - in: path
        name: user_id
        type: string
        required: true
      - in: query
        name: deviceId
        type: string
        required: true
    responses:
      200: { description: Removed }
      401: { description: Unauthorized }
      403: { description: Not your account }
    """
    device_id = require_device_id()
    if user_id != g.current_account.id:
        abort(403, description="You can only remove your own account")
    removed = sessions.forget_device(g.current_account, device_id)
    return jsonify({"success": True, "data": {"removedSessions": removed}}), 200


@bp.get("/saved-accounts/devices")
@jwt_required()
def list_devices():
    """
    Devices the signed-in account has used
    ---
    tags:
      - Saved accounts
    security:
      - Bearer: []
    responses:
      200: { description: OK }
      401: { description: Unauthorized }
    """
    devices = sessions.devices_for_account(g.current_account)
    return jsonify({"success": True, "data": device_list_schema.dump(devices)}), 200


@bp.delete("/saved-accounts/devices/<device_id>")
@jwt_required()
def clear_device(device_id: str):
    """
    Clear every saved account on a device the caller has signed in on
    ---
    tags:
      - Saved accounts
    security:
      - Bearer: []
    parameters:
      - in: path
        name: device_id
        type: string
        required: true
    responses:
      200: { description: Cleared }
      401: { description: Unauthorized }
      403: { description: Not one of your devices }
    """
    known = {device["deviceId"] for device in sessions.devices_for_account(g.current_account)}
    if device_id not in known:
        abort(403, description="You can only clear a device you have signed in on")
    removed = sessions.clear_device(device_id)
    return jsonify({"success": True, "data": {"removedSessions": removed}}), 200
