"""Nutrition Coaching API."""
