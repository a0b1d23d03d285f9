from .dispatch import ActionDispatcher, ActionRequest, status_for_error
from .server import create_portal_app
from .session_store import SqlSessionInterface

__all__ = ["ActionDispatcher", "ActionRequest", "SqlSessionInterface", "create_portal_app", "status_for_error"]
