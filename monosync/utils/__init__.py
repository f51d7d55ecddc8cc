"""Git plumbing shared by the sync engines."""
