"""Small helpers shared by the client and server."""
