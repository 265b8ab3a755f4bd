"""Machine model, Diagram IR and the builders that produce it."""
