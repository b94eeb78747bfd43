"""
Shared utilities for the catalog service.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI service skeleton (health, metrics, error handlers)
- test_helpers: Catalog test data factory

Keep cross-cutting logic here. Only test_helpers may import from
service packages.
"""
