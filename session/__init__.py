"""
Session Module
Reconciles the live event stream of an agent run into one ordered
conversation plus its UI attachments.
"""

from session.message_store import ConversationStore, Message
from session.stream_session import Notification, StreamSession
from session.lifecycle import SessionLifecycle, SessionState

__all__ = [
    'ConversationStore',
    'Message',
    'Notification',
    'StreamSession',
    'SessionLifecycle',
    'SessionState',
]
