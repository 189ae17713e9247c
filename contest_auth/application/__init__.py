"""
Application layer: configuration, collaborator interfaces and use cases.
"""
