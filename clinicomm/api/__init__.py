"""HTTP and WebSocket surface of clinicomm."""
