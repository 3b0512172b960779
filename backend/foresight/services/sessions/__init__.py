"""Session domain services: the per-session state machine and its helpers.

The actor, registry and reaper hold no transport or database imports, so
HTTP routes and socket handlers share one core. The SQL store and the
Socket.IO bus are the adapters plugged in by the app factory.
"""
