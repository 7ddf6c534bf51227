"""
Core Package.

Contains the conversion driver and its result type.
"""
