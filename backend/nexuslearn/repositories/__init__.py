"""Persistence repositories for the record store backends."""
