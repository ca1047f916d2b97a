"""Bridge services: sessions, event delivery, adapters and routing."""
