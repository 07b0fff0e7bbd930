"""
mimic.config - Command line configuration.
"""

from mimic.config.options import Config, parse_args

__all__ = ["Config", "parse_args"]
