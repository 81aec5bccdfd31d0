"""
Activity Module
Transport side of a chat session: the agent server HTTP client, the run
stream listener and offline replay of recorded streams.
"""

from activity.client import GraphServerClient
from activity.listener import StreamListener
from activity.replay import ReplayEventSource
