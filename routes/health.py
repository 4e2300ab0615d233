from flask import Blueprint, jsonify

health_bp = Blueprint("health", __name__)


@health_bp.get("/")
def index():
    return jsonify(message="Welcome to TIFPoint API"), 200


@health_bp.get("/health")
def health():
    return jsonify(status="ok"), 200
