"""Circle Calls backend - group voice calls scoped to circles."""
