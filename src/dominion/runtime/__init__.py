"""Per-batch rules evaluation: diplomacy access, usage caps, verdicts and telemetry."""
