"""Data models for reelpipe."""
from datetime import datetime

from reelpipe.database import db


class PipelineJob(db.Model):
    __tablename__ = 'jobs'

    id = db.Column(db.String(36), primary_key=True)
    inputs = db.Column(db.JSON, default=list)
    naming = db.Column(db.JSON, default=dict)

    status = db.Column(db.String(20), default="pending")
    stage = db.Column(db.String(20), default="idle")
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    started_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)

    current_input = db.Column(db.String(512))
    current_file = db.Column(db.String(512))
    episode = db.Column(db.Integer)
    progress = db.Column(db.Float, default=0.0)
    outputs = db.Column(db.JSON, default=list)
    error_message = db.Column(db.Text)

    @property
    def is_active(self) -> bool:
        return self.status in ("pending", "processing")

    def to_dict(self):
        return {
            "id": self.id,
            "inputs": self.inputs or [],
            "naming": self.naming or {},
            "status": self.status,
            "stage": self.stage,
            "current_input": self.current_input,
            "current_file": self.current_file,
            "episode": self.episode,
            "progress": self.progress,
            "outputs": self.outputs or [],
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
