"""Poll library event feeds, track what changed, and email a summary."""
