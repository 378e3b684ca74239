"""todosync: a personal task manager with offline-first synchronization."""

__version__ = "0.1.0"
