"""Configuration, ports and shared infrastructure."""
