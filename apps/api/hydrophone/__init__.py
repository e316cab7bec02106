"""Hydrophone: confirmation and invitation email service."""
