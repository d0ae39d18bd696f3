"""
Command-line interface modules for the evidence fusion engine.
"""

from .analyzer import FusionAnalyzer
from .formatter import OutputFormatter

__all__ = ["FusionAnalyzer", "OutputFormatter"]
