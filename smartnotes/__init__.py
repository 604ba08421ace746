"""Smart Notes task scheduling and reminder dispatch engine."""
