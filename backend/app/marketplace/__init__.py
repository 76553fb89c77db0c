"""Marketplace persistence for the API."""
