"""
storage package

On-disk runtime state: rate-limit table and PID marker.
"""
