from .account import Account, Role
from .db import Base
from .log import SystemLog
from .menu import Menu, RoleMenu
from .session import WebSession

__all__ = [
	"Account",
	"Base",
	"Menu",
	"Role",
	"RoleMenu",
	"SystemLog",
	"WebSession",
]
