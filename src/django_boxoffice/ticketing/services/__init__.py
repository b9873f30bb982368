"""Service layer for the ticketing app."""
