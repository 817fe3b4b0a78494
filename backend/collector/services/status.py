import threading
from datetime import datetime
from typing import Any, Dict, Optional

from collector.models.base import isoformat_utc, utcnow

AGENT_STATES = ("idle", "thinking", "busy", "error")


class AgentStatusTracker:
    """Thread-safe holder for the single, process-wide agent status.
    
    Any state may follow any other. Fields omitted from a report keep their
    previous value.
    """
    
    def __init__(self):
        self._lock = threading.Lock()
        self._state = "idle"
        self._current_action: Optional[str] = None
        self._action_start_time: Optional[datetime] = None
        self._session_id: Optional[str] = None
        self._last_activity = utcnow()
    
    def report(
        self,
        state: Optional[str] = None,
        current_action: Optional[str] = None,
        session_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Apply a status report and return the resulting snapshot."""
        if state is not None and state not in AGENT_STATES:
            raise ValueError(f"Unknown agent state: {state}")
        
        now = now or utcnow()
        with self._lock:
            self._state = state or self._state
            self._current_action = current_action or self._current_action
            self._session_id = session_id or self._session_id
            # Only entering busy restarts the clock; leaving busy never clears it
            if state == "busy":
                self._action_start_time = now
            self._last_activity = now
            return self._snapshot()
    
    def get_status(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Current snapshot plus elapsed_ms while busy."""
        now = now or utcnow()
        with self._lock:
            status = self._snapshot()
            elapsed_ms = None
            if self._state == "busy" and self._action_start_time is not None:
                elapsed_ms = int((now - self._action_start_time).total_seconds() * 1000)
        status["elapsed_ms"] = elapsed_ms
        return status
    
    def _snapshot(self) -> Dict[str, Any]:
        return {
            "state": self._state,
            "current_action": self._current_action,
            "action_start_time": isoformat_utc(self._action_start_time),
            "session_id": self._session_id,
            "last_activity": isoformat_utc(self._last_activity),
        }


# Global status tracker instance
status_tracker = AgentStatusTracker()


def get_status_tracker() -> AgentStatusTracker:
    return status_tracker
