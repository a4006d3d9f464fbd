"""monoflow: list, diff and run scripts across a JavaScript monorepo workspace."""
