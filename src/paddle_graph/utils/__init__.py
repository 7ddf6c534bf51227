"""
Utility helpers shared by the converter (logging and console output).
"""
