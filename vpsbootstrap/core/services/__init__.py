"""Core services — input handling, host facts, phase step definitions."""
