"""
Gesture Stream - Hand pose and scene capture streaming client.

This package samples articulated-hand joints from a tracked rig, converts
them into 21 MediaPipe-style hand-local landmarks, and streams them to an
inference backend over WebSocket together with periodic JPEG captures.
"""

__version__ = "1.0.0"
