"""HTTP surface of the probe server."""

from probe.web.app import ProbeWebApp

__all__ = ["ProbeWebApp"]
