"""Guided troubleshooting for unreachable Kubernetes workloads."""

__version__ = "0.1.0"
