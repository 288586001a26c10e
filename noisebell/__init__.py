"""Noisebell - self-registering circuit state webhook client"""
__version__ = "0.1.0"
