"""REST API for users and their email addresses."""
