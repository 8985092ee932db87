"""
Utility helpers for time handling.
"""
