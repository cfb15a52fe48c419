"""
stream package

Live log sources and the stream driver that follows them.
"""
