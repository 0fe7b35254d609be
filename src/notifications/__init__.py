"""Smart customer notifications: creation on eligibility events and the customer feed."""
