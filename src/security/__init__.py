"""Security module: rate limiting of customer-initiated evaluations."""
