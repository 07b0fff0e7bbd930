"""
mimic - Use a different keyboard layout group for a chosen X11 window.
"""

__version__ = "0.1.0"
