"""
NetPulse Analytics

Bronze -> Silver -> Gold pipeline for captured network-request telemetry.
"""

__version__ = "1.0.0"
