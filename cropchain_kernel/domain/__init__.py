"""Domain layer - pure value objects, status vocabularies and workflow tables."""
