"""Freight brokerage sales-pipeline analytics."""
