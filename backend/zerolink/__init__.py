"""ZeroLink real-time messaging relay."""
