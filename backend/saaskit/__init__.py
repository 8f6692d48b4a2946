"""
SaaSKit backend package.
"""
