"""Core-banking collaborators: facts, activation, customer directory."""
