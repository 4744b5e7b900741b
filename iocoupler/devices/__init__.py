"""Coupler session, discovery and device codec interfaces."""
