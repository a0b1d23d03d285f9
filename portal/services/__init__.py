from .mailer import DeliveryFailed, DeliveryQueue, LogMailer, Mailer, OutboundMessage, SmtpMailer, build_mailer
from .menus import MenuService

__all__ = [
    "DeliveryFailed",
    "DeliveryQueue",
    "LogMailer",
    "Mailer",
    "MenuService",
    "OutboundMessage",
    "SmtpMailer",
    "build_mailer",
]
