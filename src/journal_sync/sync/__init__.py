"""Two-way reconciliation between the local store and a WebDAV remote."""
