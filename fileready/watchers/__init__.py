"""
Watch pipeline: notification source -> registry -> per-file monitor -> probes.
"""
