"""spine: a managed replacement for npm link."""
