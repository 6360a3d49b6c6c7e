"""
logflux - grok-driven log ingestion into InfluxDB

Reads log lines from files or a live syslog listener, extracts typed
fields through an ordered chain of grok rules, and ships the result as
time-series points through a batching, retrying writer.
"""

__version__ = "0.1.0"
