"""Floc social-activity backend."""
