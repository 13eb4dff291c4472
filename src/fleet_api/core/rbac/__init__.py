"""Permission evaluation primitives: types, rules, approval tiers, registry."""
