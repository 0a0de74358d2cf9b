"""Service layer: one class per concern, constructed per request with a session."""
