"""
mimic.core - Window selection, key interception and translation.

This package contains:
    - xlib : X11 access via python-xlib and the owned Connection
    - errors : Exception hierarchy
    - window : The Window data structure (live property reads)
    - resolver : Which windows to target
    - grab : Key grabs and the per-window event mask table
    - keymap : Layout group translation
    - dispatch : EventDispatcher - the translate-and-resend loop
"""

from mimic.core.dispatch import EventDispatcher
from mimic.core.errors import MimicError
from mimic.core.resolver import SelectionCriteria, resolve_targets
from mimic.core.window import Window

__all__ = [
    "EventDispatcher", "MimicError",
    "SelectionCriteria", "resolve_targets", "Window",
]
