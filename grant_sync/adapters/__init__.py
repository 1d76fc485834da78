"""Adapters for external systems: the Vinnova open-data API and alert sinks."""
