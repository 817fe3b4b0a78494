from .base import BaseModel
from .session import AgentSession
from .activity import Command, LLMRequest
from .process import Process
from .event import Event

__all__ = [
    "BaseModel",
    "AgentSession",
    "Command",
    "LLMRequest",
    "Process",
    "Event",
]
