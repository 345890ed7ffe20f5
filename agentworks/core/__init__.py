"""Shared infrastructure: settings, logging, errors and concurrency helpers."""
