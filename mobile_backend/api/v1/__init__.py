"""Version 1 edge function routes."""

# Handlers gate methods themselves so every response has their CORS headers
ANY_METHOD = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE", "CONNECT"]
