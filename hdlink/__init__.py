"""HTTP/WebSocket client, URI and header helpers, and PZEM and BMP180 protocol code."""

__version__ = "0.1.0"

__all__ = ["uri", "headers", "websocket", "client", "pzem", "bmp180"]