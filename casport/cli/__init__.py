"""
CLI module for casport - contains command-line interface components.
"""

from casport.cli.main import main

__all__ = ["main"]
