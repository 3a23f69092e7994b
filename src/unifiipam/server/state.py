"""
Shared state accessors for server modules.

Avoids circular imports between server/app.py and server/endpoints/*.
The app module sets these references during startup; endpoint modules
read them via the getters.
"""

_store = None
_manager = None


def set_store(store):
    global _store
    _store = store


def set_manager(manager):
    global _manager
    _manager = manager


def get_store():
    """Get the resource store (None before startup)."""
    return _store


def get_manager():
    """Get the controller manager (None when controllers are disabled)."""
    return _manager
