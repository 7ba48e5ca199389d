"""Setup (provisioning) services.

This package contains the orchestration that *provisions* a new tenant across the
identity service and the application backend, plus the progress tracking for the
backend's asynchronous schema setup.
"""
