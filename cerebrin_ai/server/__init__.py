"""
Cerebrin AI Server Package.

This package contains the web server implementation for the control plane.
It includes the API definition, the service wiring, and configuration.

Subpackages:
    api: FastAPI route definitions and endpoint logic.
    core: Core configurations and database connections.
    exception_handlers: Mapping of domain errors to HTTP responses.
    services: Construction of the control plane and FastAPI dependencies.
"""
