"""
Coordination layer: admission queue, retrieval with fallback, playlist
sessions, access control, and request routing.
"""

from .playlist import SessionCoordinator
from .notifier import Notifier
from .request_handler import RequestHandler
from .retrieval import RetrievalOrchestrator
from .task_queue import TaskQueue
from .track_processor import TrackProcessor

__all__ = [
    "Notifier",
    "RequestHandler",
    "RetrievalOrchestrator",
    "SessionCoordinator",
    "TaskQueue",
    "TrackProcessor",
]
