"""HTTP API: routes, schemas, form actions and middleware."""
