"""Image processing package for the proxy.

This package contains modules for storage backends, the Pillow-backed
image operations, request/response schemas, runtime settings and the
batch orchestration used by the API endpoints. See individual modules
for details.
"""
