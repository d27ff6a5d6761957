"""Transport and async plumbing shared by the sync and migration engines."""
