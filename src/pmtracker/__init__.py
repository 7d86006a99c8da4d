"""pm-tracker - hourly Up/Down prediction market tracker."""

__version__ = "0.1.0"
