"""HTTP layer: static directories, access log, server."""
