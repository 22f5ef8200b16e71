"""Tick-pass subsystems: resolution math, reliability, automation, economy, telemetry."""
