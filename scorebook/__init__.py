"""
Scorebook - cricket league match approvals and ball-by-ball scoring
"""
__version__ = "0.1.0"
