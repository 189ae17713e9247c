"""
Infrastructure layer: persistence, token signing, rate limiting, transport and logging.
"""
