"""WebDAV synchronization and attachment path migration for journal data."""

__version__ = "0.1.0"
