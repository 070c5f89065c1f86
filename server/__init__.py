"""Coaching platform API server."""
