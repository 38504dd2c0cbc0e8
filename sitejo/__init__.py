"""SITEJO correspondence workflow service."""
