"""Vector math, geometry, argument parsing and a clustered tile-rendering protocol for a ray tracer."""

__version__ = "0.1.0"