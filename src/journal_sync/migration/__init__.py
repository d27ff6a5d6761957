"""Attachment path migration from legacy absolute paths to storage paths."""
