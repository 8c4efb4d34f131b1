"""Compute-side code: the worker pool and the pipeline it runs."""
