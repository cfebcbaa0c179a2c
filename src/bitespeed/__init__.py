"""Bitespeed contact identity services."""
