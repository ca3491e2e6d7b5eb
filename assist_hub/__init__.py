"""
AR Remote Assist relay hub.

Classifies each connected party as User or Aid and relays video frames,
3D annotations and WebRTC call signaling between the two roles.
"""

__version__ = "1.0.0"
