"""Progress events and fan-out to observers."""
