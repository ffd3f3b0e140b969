"""
ml_service.py — Python ML Microservice (Flask)
================================================

Lightweight HTTP service that exposes the anomaly detection pipeline to
the dashboard.

Endpoints:
    GET  /health              — Service health check
    GET  /ml/status           — Last known TrainingStatus
    POST /ml/train            — Train on { data: [...], trainRatio, epochs, batchSize }
    POST /ml/predict          — Score one reading, or { features: [6 floats] }
    POST /ml/predict/batch    — Score { data: [...] }
    POST /ml/evaluate         — Diagnostic metrics on { data: [...] }
    GET  /ml/anomalies        — Recorded anomalies (machine, dateFrom,
                                dateTo, minSeverity, maxResults filters)
    GET  /ml/anomalies/stats  — Per-machine anomaly summary

Run:
    python -m machinewatch.ml.ml_service
    # Starts on port 5050 by default (configurable via ML_SERVICE_PORT env var)
"""

import logging

from flask import Flask, jsonify, request

from . import config
from .errors import (
    InsufficientDataError,
    ModelNotFoundError,
    ModelPersistenceError,
    PipelineError,
    TrainingFailure,
    TrainingInProgressError,
    ValidationError,
)
from .inference import AnomalyDetectionService
from .utils import ensure_saved_dir, setup_logging

logger = logging.getLogger("ml.service")

_STATUS_CODES = [
    (TrainingInProgressError, 409),
    (ValidationError, 400),
    (InsufficientDataError, 400),
    (ModelNotFoundError, 404),
    (TrainingFailure, 500),
    (ModelPersistenceError, 500),
]


def _status_code(error: PipelineError) -> int:
    for error_type, code in _STATUS_CODES:
        if isinstance(error, error_type):
            return code
    return 500


def _json_body() -> dict:
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Expected a JSON object body")
    return data


def _batch(body: dict) -> list:
    data = body.get("data")
    if not isinstance(data, list):
        raise ValidationError("Expected 'data' to be a list of readings")
    return data


def create_app(service: AnomalyDetectionService = None) -> Flask:
    """
    Build the Flask app around a service instance.

    Args:
        service: Pipeline service.  Defaults to one over the configured
            saved directory.
    """
    app = Flask(__name__)
    service = service or AnomalyDetectionService.create()
    app.config["ML_SERVICE"] = service

    @app.errorhandler(PipelineError)
    def handle_pipeline_error(error):
        code = _status_code(error)
        if code >= 500:
            logger.error(f"{type(error).__name__}: {error}", exc_info=error)
        else:
            logger.info(f"Rejected request: {type(error).__name__}: {error}")
        return jsonify({"error": type(error).__name__, "message": str(error)}), code

    @app.route("/health", methods=["GET"])
    def health():
        """Health check endpoint."""
        return jsonify({
            "status": "OK",
            "service": "MachineWatch ML Pipeline",
            "modelLoaded": service.handle.has_model,
        })

    @app.route("/ml/status", methods=["GET"])
    def status():
        return jsonify(service.get_model_status().to_dict())

    @app.route("/ml/train", methods=["POST"])
    def train():
        """Train on the posted readings."""
        body = _json_body()
        options = {}
        if "trainRatio" in body:
            options["train_ratio"] = body["trainRatio"]
        if "epochs" in body:
            options["epochs"] = body["epochs"]
        if "batchSize" in body:
            options["batch_size"] = body["batchSize"]

        result = service.train_model(_batch(body), **options)
        return jsonify(result.to_dict())

    @app.route("/ml/predict", methods=["POST"])
    def predict():
        """
        Score one reading.

        Accepts either a raw reading (timestamp, machineId, six channels)
        or { "features": [...] } with an already-normalized vector.
        """
        body = _json_body()
        if "features" in body:
            result = service.predict(body["features"])
        else:
            result = service.predict_reading(body)
        return jsonify(result.to_dict())

    @app.route("/ml/predict/batch", methods=["POST"])
    def predict_batch():
        results = service.batch_predict(_batch(_json_body()))
        return jsonify({"predictions": [r.to_dict() for r in results]})

    @app.route("/ml/evaluate", methods=["POST"])
    def evaluate():
        metrics = service.evaluate_model(_batch(_json_body()))
        return jsonify({**metrics, "metricsAreDiagnostic": True})

    @app.route("/ml/anomalies", methods=["GET"])
    def anomalies():
        log = service.anomaly_log
        if log is None:
            return jsonify({"anomalies": []})

        max_results = request.args.get("maxResults")
        try:
            records = log.filter(
                machine_id=request.args.get("machine"),
                date_from=request.args.get("dateFrom"),
                date_to=request.args.get("dateTo"),
                min_severity=request.args.get("minSeverity"),
                max_results=int(max_results) if max_results else None,
            )
        except ValueError as e:
            raise ValidationError(str(e)) from e
        return jsonify({"anomalies": [r.to_dict() for r in records]})

    @app.route("/ml/anomalies/stats", methods=["GET"])
    def anomaly_stats():
        log = service.anomaly_log
        return jsonify({"machines": log.machine_stats() if log is not None else []})

    return app


if __name__ == "__main__":
    setup_logging()
    ensure_saved_dir()
    logger.info(f"Starting ML service on port {config.ML_SERVICE_PORT}")
    create_app().run(host="0.0.0.0", port=config.ML_SERVICE_PORT, debug=False)
