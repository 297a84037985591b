"""Community comments API."""
