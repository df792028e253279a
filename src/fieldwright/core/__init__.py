"""Core services: configuration, logging, registry, cascade, matching, graph."""
