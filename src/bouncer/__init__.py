"""Bouncer - website time limits with schedule- and cooldown-aware enforcement."""

__version__ = "0.1.0"
