"""Client session: durable storage, the auth store and background polling."""
