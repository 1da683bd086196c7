"""Configuration for the feed client."""
