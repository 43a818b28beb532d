"""Domain layer — handler definitions, batch wire models, validation rules.

This layer depends only on stdlib and pydantic.
It must never import from services, infrastructure, commands, or config.
"""
