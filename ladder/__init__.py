"""
ladder
Round-robin ladder league backend: court groups, round closing, league rankings.
"""
__version__ = "1.0.0"
