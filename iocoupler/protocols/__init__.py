"""Fieldbus transports."""
