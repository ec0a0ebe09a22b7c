"""Ponte — adapter cliente para o plugin AudioBridge do Janus."""

__version__ = "0.1.0"
