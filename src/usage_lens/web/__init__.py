"""JSON web API for Usage Lens."""
