"""
Request-scoped tenant context.

Not a Django app: it holds no models, only the contextvars the access
gate fills in for the duration of one request.
"""
