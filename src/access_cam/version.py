"""Version information for AccessCam."""

APP_VERSION = "0.3.0"

__all__ = ["APP_VERSION"]
