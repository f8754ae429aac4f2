"""Event handler routing."""

from eventqueue.handlers.router import EventHandler, HandlerRouter

__all__ = ["EventHandler", "HandlerRouter"]
