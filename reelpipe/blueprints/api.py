"""API blueprint for reelpipe."""

import logging

from flask import Blueprint, jsonify, request

from reelpipe.config import load_config
from reelpipe.errors import ConfigurationError
from reelpipe.jobs import (
    cancel_job,
    create_job,
    get_all_jobs,
    get_job,
    remove_job,
    start_job,
)
from reelpipe.transcoder import TranscodeOptions, TranscodeVideo

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__)


@api_bp.route("/jobs", methods=["POST"])
def create_job_api():
    """Queue a pipeline run over a list of inputs."""
    data = request.get_json(silent=True) or {}
    inputs = data.get("inputs")

    if not inputs or not isinstance(inputs, list) or not all(isinstance(i, str) for i in inputs):
        return jsonify({"error": "inputs must be a non-empty list of paths"}), 400

    naming = data.get("naming")
    if naming is not None and not isinstance(naming, dict):
        return jsonify({"error": "naming must be an object"}), 400

    try:
        job = create_job(inputs, naming)
    except ConfigurationError as e:
        return jsonify({"error": str(e)}), 400

    start_job(job)
    return jsonify({"job_id": job.id, "status": job.status})


@api_bp.route("/jobs", methods=["GET"])
def list_jobs():
    """List all pipeline jobs."""
    return jsonify({"jobs": [job.to_dict() for job in get_all_jobs()]})


@api_bp.route("/jobs/<job_id>", methods=["GET"])
def get_job_status(job_id):
    """Get the status of a specific job."""
    job = get_job(job_id)
    if job is None:
        return jsonify({"error": "Job not found"}), 404

    return jsonify(job.to_dict())


@api_bp.route("/jobs/<job_id>/cancel", methods=["POST"])
def cancel_job_api(job_id):
    """Cancel a pipeline job."""
    if get_job(job_id) is None:
        return jsonify({"error": "Job not found"}), 404

    if cancel_job(job_id):
        return jsonify({"status": "cancelled"})
    return jsonify({"error": "Could not cancel job"}), 400


@api_bp.route("/jobs/<job_id>/remove", methods=["POST"])
def remove_job_api(job_id):
    """Remove a completed, failed, or cancelled job."""
    if get_job(job_id) is None:
        return jsonify({"error": "Job not found"}), 404

    if remove_job(job_id):
        return jsonify({"status": "removed"})
    return jsonify({"error": "Could not remove job"}), 400


@api_bp.route("/config/transcode", methods=["GET"])
def get_transcode_config():
    """Current transcode template, with the option blocks as ffmpeg sees them."""
    config = load_config()
    try:
        options = TranscodeOptions.from_dict(config.transcode)
        resolved = TranscodeVideo(work_dir="", options=options).resolve_options()
    except ConfigurationError as e:
        logger.warning(f"Invalid transcode template: {e}")
        return jsonify({"template": config.transcode, "error": str(e), "field": e.field}), 400

    preview = {
        name: block.get_options() if block is not None else None
        for name, block in (
            ("video", resolved.video),
            ("audio", resolved.audio),
            ("subtitle", resolved.subtitle),
            ("container", resolved.container),
        )
    }
    return jsonify({"template": config.transcode, "resolved": preview})
