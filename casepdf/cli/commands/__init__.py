"""Sub-commands exposed by the casepdf CLI."""
