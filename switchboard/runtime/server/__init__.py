"""HTTP surface -- app factory, route dispatch, middleware."""
