"""SocketIO server and the events reelpipe pushes to clients."""

import logging

from flask_socketio import SocketIO

logger = logging.getLogger(__name__)

# Initialized against the app in create_app()
socketio = SocketIO()


def emit_job_progress(data):
    """Push a job progress update to all connected clients."""
    try:
        socketio.emit("job_progress", data)
    except Exception as e:
        logger.debug(f"Could not emit job progress: {e}")


def emit_job_status(data):
    try:
        socketio.emit("job_status", data)
    except Exception as e:
        logger.debug(f"Could not emit job status: {e}")
