"""Merging, RowClone detection and cache filtering of QEMU memory access logs."""

__version__ = "0.1.0"