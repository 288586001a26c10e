"""Webhook receiving for Noisebell."""
