'''
    Real-time relay between one water-quality sensor and any number of
    dashboards over WebSocket.
'''

__version__ = "1.0.0"
