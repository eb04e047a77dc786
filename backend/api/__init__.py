"""
HTTP and WebSocket API.
"""
