"""Lightstep Operator.

Synchronizes declaratively specified Lightstep resources (streams,
dashboards, conditions and alerts) against the Lightstep public API.
"""

__version__ = "0.1.0"
