"""PQS - Project Quick Start: create projects from reusable templates."""

__version__ = "1.0.0"
