"""
parser package

SSH log line classification into structured events.
"""
