"""Ranked search over NixOS options and packages for fc-nixos channels."""

__version__ = "0.3.0"
