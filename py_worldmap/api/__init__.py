"""
HTTP API for map generation and tile delivery.
"""
