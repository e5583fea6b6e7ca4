"""Service layer for crowd risk scoring, protection, alerts, and one-time codes."""
