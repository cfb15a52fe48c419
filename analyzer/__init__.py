"""
analyzer package

Notification gating decisions.
"""
