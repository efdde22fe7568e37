"""HTTP API for the chat gateway.

The application factory lives in ``kaap.api.main``.
"""
