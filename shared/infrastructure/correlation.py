"""
Connection correlation for log records.

Every log line emitted while serving a connection carries that
connection's session id, so one client's activity can be followed
through the log file.
"""

from contextvars import ContextVar, Token

# Context variable for the session id of the connection task
session_id_var: ContextVar[str] = ContextVar("session_id", default="")


def get_session_id() -> str:
    """Get the session id bound to the current task."""
    return session_id_var.get()


def bind_session_id(session_id: str) -> Token[str]:
    """Bind a session id to the current task. Returns the reset token."""
    return session_id_var.set(session_id)


def unbind_session_id(token: Token[str]) -> None:
    """Restore the previous binding."""
    session_id_var.reset(token)


class CorrelationIdFilter:
    """
    Logging filter that adds session_id to log records.

    Usage:
        import logging
        handler = logging.StreamHandler()
        handler.addFilter(CorrelationIdFilter())
    """

    def filter(self, record) -> bool:
        record.session_id = session_id_var.get() or "-"
        return True
