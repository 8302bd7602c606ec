"""Registry reference parsing, credentials and HTTP access."""
