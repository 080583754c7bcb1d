"""
SQLAlchemy models.
"""
from narrator.models.job import Base, Job, JobStatus, Provider, AudioFormat

__all__ = ['Base', 'Job', 'JobStatus', 'Provider', 'AudioFormat']
