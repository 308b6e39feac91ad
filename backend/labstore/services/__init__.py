"""Service layer: reference validation, search, bundle assembly and resource orchestration."""
