"""
Logging helpers for the evidence fusion engine.
"""
