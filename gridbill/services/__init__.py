"""Billing, insights and aggregation services."""
