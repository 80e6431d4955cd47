"""Encrypted configuration store of the voice agent desktop tool."""
