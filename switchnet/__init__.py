"""Simulated switches and systems exchanging files over pipes, driven by a console load balancer."""

__version__ = "0.1.0"