"""Sync server for Trackr.

Exposes the RemoteMergeService over HTTP using the action-based wire
protocol that installations speak:

    GET  <endpoint>?action=SYNC_PULL&companyId=<key>
    GET  <endpoint>?action=FIND_USER&email=<email>
    POST <endpoint>  {"action": "SYNC_PUSH", "companyId": <key>, "data": {...}}
    POST <endpoint>  {"action": "NOTIFY", "payload": {...}}

The endpoint path is ``/macros/s/<deployment_id>/exec``. Every response
is a JSON envelope with ``status`` set to "success" or "error".
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Tuple

from flask import Blueprint, Flask, jsonify, request
from flask_cors import CORS

from .merge_service import RemoteMergeService
from .persistence import JsonFileStorage

logger = logging.getLogger(__name__)

__all__ = ["create_sync_blueprint", "create_sync_server", "endpoint_path"]


def endpoint_path(deployment_id: str) -> str:
    """Get the URL path of the sync endpoint for a deployment."""
    return f"/macros/s/{deployment_id}/exec"


def _error(message: str, code: int) -> Tuple[Any, int]:
    return jsonify({"status": "error", "message": message}), code


def create_sync_blueprint(service: RemoteMergeService, deployment_id: str) -> Blueprint:
    """Create Flask blueprint for the sync endpoint.

    Args:
        service: Merge service backing the endpoint
        deployment_id: Only requests for this deployment are served

    Returns:
        Flask Blueprint with sync routes
    """
    sync_bp = Blueprint("sync", __name__)

    @sync_bp.route("/macros/s/<requested_id>/exec", methods=["GET"])
    def handle_get(requested_id: str) -> Tuple[Any, int]:
        """Serve SYNC_PULL and FIND_USER.

        Response (SYNC_PULL):
            {"status": "success", "data": {...collections...}}

        Response (FIND_USER):
            {"status": "success", "user": {...}}
            {"status": "error", "message": "User not found"}
        """
        if requested_id != deployment_id:
            return _error(f"Unknown deployment: {requested_id}", 404)
        action = request.args.get("action")
        try:
            if action == "SYNC_PULL":
                company_id = request.args.get("companyId")
                if not company_id:
                    return _error("Missing companyId", 400)
                return jsonify({"status": "success", "data": service.pull(company_id)}), 200

            if action == "FIND_USER":
                email = request.args.get("email")
                if not email:
                    return _error("Missing email", 400)
                user = service.find_user_by_email(email)
                if user is None:
                    return jsonify({"status": "error", "message": "User not found"}), 200
                return jsonify({"status": "success", "user": user}), 200

            return _error(f"Unknown action: {action}", 400)

        except Exception as e:
            logger.error(f"Internal server error handling {action}: {e}")
            return _error(f"Internal server error: {e}", 500)

    @sync_bp.route("/macros/s/<requested_id>/exec", methods=["POST"])
    def handle_post(requested_id: str) -> Tuple[Any, int]:
        """Serve SYNC_PUSH and NOTIFY.

        The body is parsed as JSON regardless of Content-Type, since
        browser clients send it as plain text.
        """
        if requested_id != deployment_id:
            return _error(f"Unknown deployment: {requested_id}", 404)
        body = request.get_json(force=True, silent=True)
        if not isinstance(body, dict):
            error_msg = "Missing JSON request body"
            logger.warning(f"Sync POST rejected: {error_msg}")
            return _error(error_msg, 400)

        action = body.get("action")
        try:
            if action == "SYNC_PUSH":
                company_id = body.get("companyId")
                data = body.get("data")
                if not company_id or not isinstance(data, dict):
                    return _error("SYNC_PUSH needs companyId and a data object", 400)
                service.push(company_id, data)
                return jsonify({"status": "success"}), 200

            if action == "NOTIFY":
                payload = body.get("payload")
                if not isinstance(payload, dict) or not payload.get("to"):
                    return _error("NOTIFY needs a payload with a recipient", 400)
                service.notify(payload)
                return jsonify({"status": "success"}), 200

            return _error(f"Unknown action: {action}", 400)

        except Exception as e:
            logger.error(f"Internal server error handling {action}: {e}")
            return _error(f"Internal server error: {e}", 500)

    @sync_bp.route("/status", methods=["GET"])
    def status() -> Tuple[Any, int]:
        """Report server liveness and partition count."""
        return jsonify({
            "status": "ok",
            "deployment_id": deployment_id,
            "endpoint": endpoint_path(deployment_id),
            "partitions": len(service.partition_keys()),
        }), 200

    return sync_bp


def create_sync_server(
    service: Optional[RemoteMergeService] = None,
    config: Optional[Any] = None,
    deployment_id: Optional[str] = None,
) -> Flask:
    """Create a standalone Flask sync server.

    Args:
        service: Merge service; built from config's data file if None
        config: Config instance supplying data file and deployment id
        deployment_id: Overrides the configured deployment id

    Returns:
        Flask application instance
    """
    if service is None:
        storage = JsonFileStorage(config.get_server_data_file()) if config is not None else None
        service = RemoteMergeService(storage)
    if deployment_id is None:
        deployment_id = config.get("deployment_id") if config is not None else "trackr-local"

    app = Flask(__name__)
    app.json.sort_keys = False
    CORS(app)
    app.register_blueprint(create_sync_blueprint(service, deployment_id))
    app.extensions["trackr_merge_service"] = service
    logger.info(f"Sync server ready at {endpoint_path(deployment_id)}")
    return app
