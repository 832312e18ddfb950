"""Mitigation-detection backend for screened stocks: scanner, zones and price history."""
