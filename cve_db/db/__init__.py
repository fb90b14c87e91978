from .progress_tracker import ProgressTracker
from .record_store import RecordStore

__all__ = ['RecordStore', 'ProgressTracker']
