"""Partner Reservation Exporter."""

__version__ = "1.0.0"
