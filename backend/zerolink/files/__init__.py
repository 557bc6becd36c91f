"""Media upload module.

Clients upload an image or video with POST /api/upload, then reference the
returned URL in a sendMedia event. Blobs are served from GET /uploads/{name}.
"""
