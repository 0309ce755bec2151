"""Entity metadata, entities and relation resolution."""
