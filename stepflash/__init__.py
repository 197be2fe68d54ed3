"""Stepper motor motion control and a filesystem for SPI serial flash memory."""

__version__ = "0.1.0"