"""REST API for the parameter gateway."""
