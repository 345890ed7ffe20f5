"""Typed records exchanged between the services and validated at store boundaries."""
