"""Asynchronous video analysis job pipeline."""
