"""Shared utilities for Rentguard."""
