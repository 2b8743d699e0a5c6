"""Client for a BP35A1 Wi-SUN module reading a smart electricity meter over the B-route."""

__version__ = "0.1.0"
__all__ = ["client", "responses"]