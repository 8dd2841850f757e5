"""
Shared helpers for numeric coercion and dates.
"""
