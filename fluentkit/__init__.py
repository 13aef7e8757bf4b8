"""Manifest builders, route labels, file watchers, supervisors and an HTTP receiver for Fluent Bit and Fluentd."""

__version__ = "0.1.0"