"""Error handling and HTTP plumbing."""
