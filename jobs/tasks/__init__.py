"""
Dramatiq actors.
"""
