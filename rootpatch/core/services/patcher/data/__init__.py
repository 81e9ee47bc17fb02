"""
L0 Data — fixed host layout, thresholds and command names.
"""
