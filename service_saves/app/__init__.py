"""Save Files Service application."""
