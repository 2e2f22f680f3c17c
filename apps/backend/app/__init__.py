"""casepdf HTTP backend."""
