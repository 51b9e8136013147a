"""Domain data for dagplane."""
