"""Pure policy logic: catalog, constraints, predicates, triggers and decisions."""
