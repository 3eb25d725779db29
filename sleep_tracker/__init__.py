"""Sleep tracker core: session lifecycle, movement sampling, alarms and statistics."""
