"""Fantasy matchups live-update service."""
