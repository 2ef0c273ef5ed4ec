"""Pipeline job queue: persists runs and executes them on background threads."""

import os
import uuid
import logging
import datetime
import tempfile
import threading
from typing import Any, Dict, List, Optional

from reelpipe.config import load_config
from reelpipe.database import db
from reelpipe.errors import CancelledError, PipelineError
from reelpipe.models import PipelineJob
from reelpipe.naming import LibraryNaming
from reelpipe.pipeline import PipelineState, cleanup_work_dir, create_pipeline
from reelpipe.socket_events import emit_job_progress, emit_job_status

# Configure logging
logger = logging.getLogger(__name__)

# Cancellation events of running jobs, keyed by job id
RUNNING_JOBS: Dict[str, threading.Event] = {}
RUNNING_JOBS_LOCK = threading.Lock()


def create_job(inputs: List[str], naming: Optional[Dict[str, Any]] = None) -> PipelineJob:
    """Create a new pipeline job."""
    # Validate naming up front so bad requests never reach the queue
    LibraryNaming.from_dict(naming)

    job_id = str(uuid.uuid4())
    job = PipelineJob(
        id=job_id,
        inputs=list(inputs),
        naming=dict(naming or {}),
        status="pending",
        stage="idle",
    )

    db.session.add(job)
    db.session.commit()
    logger.debug(f"Created job with id={job_id} for {len(inputs)} inputs")
    return job


def get_job(job_id: str) -> Optional[PipelineJob]:
    """Get a job by ID."""
    return db.session.get(PipelineJob, job_id)


def get_all_jobs() -> List[PipelineJob]:
    """Get all jobs ordered by creation date."""
    return PipelineJob.query.order_by(PipelineJob.created_at.desc()).all()


def get_running_job_count() -> int:
    """Get count of currently running jobs."""
    return PipelineJob.query.filter_by(status="processing").count()


def get_pending_jobs() -> List[PipelineJob]:
    """Get all pending jobs ordered by creation date."""
    return PipelineJob.query.filter_by(status="pending").order_by(PipelineJob.created_at.asc()).all()


def start_job(job: PipelineJob):
    """Start a job now if a slot is free, otherwise leave it queued."""
    config = load_config()
    if get_running_job_count() < config.max_concurrent_jobs:
        _start_job_thread(job.id)
    else:
        logger.debug(f"Job {job.id} queued - max concurrent jobs reached")


def cancel_job(job_id: str) -> bool:
    """Cancel a pending or running job."""
    job = get_job(job_id)
    if not job:
        return False

    if job.status == "processing":
        with RUNNING_JOBS_LOCK:
            event = RUNNING_JOBS.get(job_id)
        if event is not None:
            event.set()
        # The job thread records the final status once ffmpeg has stopped
        return True

    if job.status == "pending":
        job.status = "cancelled"
        job.completed_at = datetime.datetime.utcnow()
        db.session.commit()
        return True

    return False


def remove_job(job_id: str) -> bool:
    """Remove a completed, failed, or cancelled job from the database."""
    job = get_job(job_id)
    if not job:
        return False

    if not job.is_active:
        db.session.delete(job)
        db.session.commit()
        return True

    return False


def process_job_queue():
    """Start pending jobs while there are free slots."""
    try:
        config = load_config()
        available_slots = max(0, config.max_concurrent_jobs - get_running_job_count())
        if available_slots <= 0:
            return

        for job in get_pending_jobs()[:available_slots]:
            _start_job_thread(job.id)

    except Exception as e:
        logger.error(f"Error processing job queue: {e}")


def _estimate_progress(state: PipelineState) -> float:
    """Fraction of the run finished, by input and by file within the input."""
    if not state.inputs or state.input not in state.inputs:
        return 0.0
    done = state.inputs.index(state.input)
    if state.file in state.files:
        done += state.files.index(state.file) / len(state.files)
    return min(done / len(state.inputs), 1.0)


def _run_job_logic(app, job_id: str, cancel_event: threading.Event):
    """Pipeline run for one job, on its own thread."""
    with app.app_context():
        job = get_job(job_id)
        if not job or job.status != "pending":
            # Cancelled (or already picked up) between queueing and thread start
            logger.debug(f"Job {job_id} is no longer pending, not running it")
            with RUNNING_JOBS_LOCK:
                RUNNING_JOBS.pop(job_id, None)
            return

        config = load_config()
        if config.work_dir:
            os.makedirs(config.work_dir, exist_ok=True)
        work_dir = tempfile.mkdtemp(prefix="reelpipe-", dir=config.work_dir)

        def on_state(state: PipelineState):
            job.stage = state.stage.value
            job.current_input = state.input
            job.current_file = state.file
            job.episode = state.episode
            job.outputs = list(state.outputs)
            job.progress = _estimate_progress(state)
            db.session.commit()
            emit_job_status(job.to_dict())

        def on_progress(report, percent):
            # Runs on the progress listener thread: no database access here
            emit_job_progress({"job_id": job_id, "percent": percent, **report.to_dict()})

        try:
            job.status = "processing"
            job.started_at = datetime.datetime.utcnow()
            db.session.commit()

            pipeline = create_pipeline(
                config,
                work_dir,
                naming=LibraryNaming.from_dict(job.naming) if job.naming else None,
                on_state=on_state,
            )
            outputs = pipeline.run(job.inputs, cancel_event=cancel_event, on_progress=on_progress)

            job.status = "completed"
            job.progress = 1.0
            job.outputs = outputs
            job.completed_at = datetime.datetime.utcnow()
            db.session.commit()

        except PipelineError as e:
            if isinstance(e.__cause__, CancelledError):
                logger.info(f"Job {job_id} cancelled while {e.stage}")
                job.status = "cancelled"
            else:
                logger.error(f"Pipeline failed for job {job_id}: {e}")
                job.status = "failed"
                job.error_message = str(e)
            job.outputs = e.outputs
            job.completed_at = datetime.datetime.utcnow()
            db.session.commit()

        except Exception as e:
            logger.error(f"Job {job_id} failed: {e}")
            job.status = "failed"
            job.error_message = str(e)
            job.completed_at = datetime.datetime.utcnow()
            db.session.commit()

        finally:
            with RUNNING_JOBS_LOCK:
                RUNNING_JOBS.pop(job_id, None)
            cleanup_work_dir(work_dir)
            emit_job_status(job.to_dict())

        # Trigger next job
        process_job_queue()


def _start_job_thread(job_id: str):
    """Start the job thread."""
    from flask import current_app
    app = current_app._get_current_object()

    cancel_event = threading.Event()
    with RUNNING_JOBS_LOCK:
        if job_id in RUNNING_JOBS:
            return
        RUNNING_JOBS[job_id] = cancel_event

    t = threading.Thread(target=_run_job_logic, args=(app, job_id, cancel_event))
    t.daemon = True
    t.start()
