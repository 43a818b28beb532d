"""Service layer — registry, dispatch, upload binding, documentation.

Services may import from domain and infrastructure layers.
They must never import from commands, output, or server.
"""
