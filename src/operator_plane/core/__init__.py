"""Cross-cutting primitives: errors, logging, settings, timestamps, secrets."""
