"""rtc-chat: peer-to-peer chat over a WebRTC data channel.

A relay server is used only to exchange signaling (SDP and ICE candidates);
chat text flows directly between the two peers.
"""

__version__ = "0.1.0"
