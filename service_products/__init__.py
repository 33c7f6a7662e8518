"""
Products service for the access layer.
"""
