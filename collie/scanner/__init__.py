"""ROM discovery."""
