"""Process-level settings and logging presets."""
