"""Infrastructure layer — handler source loading, change watching, dependency
modules, template environments.

This layer depends on stdlib and third-party libs (Jinja2).
It must never import from services, commands, output, or server.
"""
