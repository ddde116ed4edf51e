"""Configuration loading for Rentguard (YAML file plus environment)."""
