"""Core algorithms: geometry, calibration, cuts and the sharing filter."""
