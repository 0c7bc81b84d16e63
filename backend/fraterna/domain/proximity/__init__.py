"""Member map: location publishing, visibility and proximity alerts."""
