"""Utility modules for asvToolkit.

Submodules are imported directly; `utils.config` stays free of numpy so
thread limits can be set before numpy loads.
"""
