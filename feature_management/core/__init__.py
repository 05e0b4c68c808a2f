"""Core feature management: settings, errors, logging and the evaluation engine."""
