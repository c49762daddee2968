"""
services/notifications.py - Notification Emitter
Grading and return events are handed to a sink after the grading
transaction commits. A failing sink is logged, never surfaced to the caller.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from extensions import db
from models import Notification

logger = logging.getLogger(__name__)

GRADE_RECEIVED = 'grade_received'
COMMENT_ADDED = 'comment_added'


@dataclass
class NotificationEvent:
    recipient_id: int
    title: str
    message: str
    type: str
    class_id: Optional[int] = None
    assignment_id: Optional[int] = None


class DatabaseSink:
    """Stores each event as a Notification row in its own commit"""

    def send(self, event):
        db.session.add(Notification(
            user_id=event.recipient_id,
            title=event.title,
            message=event.message,
            type=event.type,
            class_id=event.class_id,
            assignment_id=event.assignment_id
        ))
        db.session.commit()


class Notifier:
    """
    Flask extension holding the active notification sink.
    Usage: notifier.init_app(app), then notifier.emit(event)
    """

    def __init__(self, app=None, sink=None):
        self.sink = sink
        if app is not None:
            self.init_app(app, sink)

    def init_app(self, app, sink=None):
        self.sink = sink or self.sink or DatabaseSink()
        app.extensions['notifier'] = self

    def emit(self, event):
        try:
            self.sink.send(event)
        except Exception:
            db.session.rollback()
            logger.error(
                "Failed to deliver %s notification to user %s",
                event.type, event.recipient_id, exc_info=True
            )
            return False
        return True


notifier = Notifier()
