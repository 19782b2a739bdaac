"""Backpressure policies, allocators, substrate-aware messages and TDT tensor compression."""

__version__ = "2.0.0"