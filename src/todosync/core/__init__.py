"""Core task storage and synchronization modules.

CRITICAL: Nothing in this package may import the web or CLI layers.
"""
